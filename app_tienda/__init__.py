# ==============================================================================
# APP TIENDA - Tienda en línea e imprenta
# ==============================================================================
# Paquetes:
#   models/        Entidades del dominio (dataclasses)
#   repositories/  Data Store (tablas JSON) y Object Store (archivos)
#   services/      Lógica de negocio
#   main.py        API Flask (create_app)
# ==============================================================================

__version__ = '1.0.0'
