from . import create, status

__all__ = ['create', 'status']
