# routers/__init__.py
"""
Routers modulares para a API FastAPI
"""

from . import auth
from . import agendamentos
from . import asaas
from . import faturas
from . import comissoes
from . import produtos
from . import notifications
from . import webhooks
from . import whatsapp
from . import registro_publico
from . import google
from . import ai

__all__ = [
    'auth',
    'agendamentos',
    'asaas',
    'faturas',
    'comissoes',
    'produtos',
    'notifications',
    'webhooks',
    'whatsapp',
    'registro_publico',
    'google',
    'ai',
]
