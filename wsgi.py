# ==============================================================================
# WSGI Entry Point - Para Gunicorn en producción
# ==============================================================================
# USO:
#   gunicorn wsgi:app --bind 0.0.0.0:$PORT
#
# ESTRUCTURA DEL PROYECTO:
#   repo_root/           <- Directorio de trabajo (en sys.path automáticamente)
#   ├── wsgi.py          <- Este archivo
#   ├── pyproject.toml
#   └── app_tienda/      <- Paquete Python
#       ├── main.py
#       ├── services/
#       └── repositories/
#
# Los imports absolutos funcionan sin manipular sys.path:
#   from app_tienda.main import app
# ==============================================================================

from app_tienda.main import app

if __name__ == '__main__':
    app.run(debug=True, host='0.0.0.0', port=5000)
