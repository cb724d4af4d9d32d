# routers/asaas.py
"""
Router com as operações diretas no ASAAS usadas pelo painel financeiro.

As respostas seguem o formato {success, ...}; falhas do ASAAS voltam com
HTTP 200 e {success: false, error}, dados ausentes com HTTP 400.
"""

import logging
from typing import Callable, Dict, Any
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
import schemas
import crud
from database import get_db
from auth import get_current_staff_user, get_current_admin_user
from firebase_admin import firestore
from services import asaas
from services.asaas import AsaasError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/asaas", tags=["ASAAS"])

TAMANHO_MINIMO_TOKEN = 10


def _erro(mensagem: str, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": mensagem})


def _executar(db: firestore.client, empresa_id: str, operacao: Callable[[asaas.AsaasClient], Dict[str, Any]]):
    api_key = crud.buscar_api_key_empresa(db, empresa_id)
    if not api_key:
        return _erro("API key da empresa não configurada", 400)
    try:
        with asaas.get_asaas_client(api_key) as cliente:
            return {"success": True, **operacao(cliente)}
    except AsaasError as e:
        return _erro(e.message)


@router.post("/customers")
def criar_cliente(
    dados: schemas.AsaasClienteRequest,
    current_user: schemas.UsuarioProfile = Depends(get_current_staff_user),
    db: firestore.client = Depends(get_db)
):
    if not dados.customer.get('name') or not dados.customer.get('cpfCnpj'):
        return _erro("Dados obrigatórios não informados", 400)
    return _executar(db, dados.empresa_id, lambda c: {"customer": c.criar_cliente(dados.customer)})


@router.post("/customers/search")
def buscar_cliente(
    dados: schemas.AsaasBuscaClienteRequest,
    current_user: schemas.UsuarioProfile = Depends(get_current_staff_user),
    db: firestore.client = Depends(get_db)
):
    return _executar(db, dados.empresa_id, lambda c: c.buscar_cliente_por_cpf(dados.cpf_cnpj))


@router.post("/customers/disable-notifications")
def desabilitar_notificacoes(
    dados: schemas.AsaasNotificacoesRequest,
    current_user: schemas.UsuarioProfile = Depends(get_current_staff_user),
    db: firestore.client = Depends(get_db)
):
    def operacao(cliente: asaas.AsaasClient):
        cliente.desabilitar_notificacoes(dados.customer_id)
        return {"message": "Notificações desabilitadas com sucesso"}
    return _executar(db, dados.empresa_id, operacao)


@router.post("/payments")
def criar_pagamento(
    dados: schemas.AsaasPagamentoRequest,
    current_user: schemas.UsuarioProfile = Depends(get_current_staff_user),
    db: firestore.client = Depends(get_db)
):
    return _executar(db, dados.empresa_id, lambda c: {"payment": c.criar_pagamento(dados.payment)})


@router.post("/payments/update")
def atualizar_pagamento(
    dados: schemas.AsaasAtualizarPagamentoRequest,
    current_user: schemas.UsuarioProfile = Depends(get_current_staff_user),
    db: firestore.client = Depends(get_db)
):
    return _executar(
        db, dados.empresa_id,
        lambda c: {"payment": c.atualizar_pagamento(dados.payment_id, dados.payment)},
    )


@router.post("/payments/cancel")
def cancelar_pagamento(
    dados: schemas.AsaasPagamentoIdRequest,
    current_user: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
):
    return _executar(db, dados.empresa_id, lambda c: {"data": c.cancelar_pagamento(dados.payment_id)})


@router.post("/payments/receive-in-cash")
def receber_em_dinheiro(
    dados: schemas.AsaasReceberDinheiroRequest,
    current_user: schemas.UsuarioProfile = Depends(get_current_staff_user),
    db: firestore.client = Depends(get_db)
):
    return _executar(
        db, dados.empresa_id,
        lambda c: {"payment": c.receber_em_dinheiro(
            dados.payment_id, dados.valor, dados.data_pagamento, dados.notificar_cliente,
        )},
    )


@router.post("/invoices")
def agendar_nota_fiscal(
    dados: schemas.AsaasNotaFiscalRequest,
    current_user: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
):
    return _executar(db, dados.empresa_id, lambda c: {"invoice": c.agendar_nota_fiscal(dados.invoice)})


@router.post("/invoices/authorize")
def autorizar_nota_fiscal(
    dados: schemas.AsaasAutorizarNotaRequest,
    current_user: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
):
    return _executar(db, dados.empresa_id, lambda c: {"invoice": c.autorizar_nota_fiscal(dados.invoice_id)})


@router.post("/validate-token")
def validar_token(
    dados: schemas.AsaasTokenRequest,
    current_user: schemas.UsuarioProfile = Depends(get_current_admin_user),
):
    """Confere uma chave antes de salvá-la na empresa. Sempre responde 200."""
    token = (dados.token or '').strip()
    if len(token) < TAMANHO_MINIMO_TOKEN:
        return {"isValid": False, "message": "Token deve ter pelo menos 10 caracteres"}
    try:
        with asaas.get_asaas_client(token) as cliente:
            valido = cliente.validar_token()
    except AsaasError as e:
        return {"isValid": False, "message": e.message}
    if valido:
        return {"isValid": True, "message": "Token válido e ativo"}
    return {"isValid": False, "message": "Token inválido ou expirado"}


@router.post("/companies")
def criar_empresa(
    dados: schemas.AsaasCriarEmpresaRequest,
    current_user: schemas.UsuarioProfile = Depends(get_current_admin_user),
):
    if not dados.token or len(dados.token.strip()) < TAMANHO_MINIMO_TOKEN:
        return _erro("Token inválido", 400)
    if not dados.razao_social or not dados.cnpj:
        return _erro("Dados da empresa são obrigatórios", 400)
    try:
        with asaas.get_asaas_client(dados.token) as cliente:
            empresa = cliente.criar_empresa(dados.razao_social, dados.cnpj)
    except AsaasError as e:
        logger.error(f"Erro ao criar empresa {dados.razao_social} no Asaas: {e.message}")
        return _erro(e.message, 500)
    return {"success": True, "message": "Empresa criada com sucesso no Asaas", "asaasId": empresa.get('id')}
