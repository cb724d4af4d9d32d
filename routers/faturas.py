# routers/faturas.py
"""
Router de faturamento: geração de cobranças, edição, exclusão e NFe
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, status
from typing import Optional
import schemas
import crud
from database import get_db
from auth import get_current_staff_user, get_current_admin_user
from firebase_admin import firestore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Faturamento"])


@router.get("/faturas")
def listar_faturas(
    status_fatura: Optional[str] = None,
    responsavel_id: Optional[str] = None,
    paciente_id: Optional[str] = None,
    current_user: schemas.UsuarioProfile = Depends(get_current_staff_user),
    db: firestore.client = Depends(get_db)
):
    return crud.listar_faturas(db, status_fatura, responsavel_id, paciente_id)


@router.get("/faturas/metricas")
def metricas_faturas(
    paciente_id: Optional[str] = None,
    current_user: schemas.UsuarioProfile = Depends(get_current_staff_user),
    db: firestore.client = Depends(get_db)
):
    """Totais por status e faturas em aberto que vencem nos próximos 7 dias."""
    return crud.calcular_metricas_faturas(db, paciente_id)


@router.get("/responsaveis/{responsavel_id}/consultas-elegiveis")
def listar_consultas_elegiveis(
    responsavel_id: str,
    fatura_id: Optional[str] = None,
    current_user: schemas.UsuarioProfile = Depends(get_current_staff_user),
    db: firestore.client = Depends(get_db)
):
    return crud.listar_consultas_elegiveis(db, responsavel_id, fatura_id)


@router.post("/faturas/processar-pagamento", status_code=status.HTTP_201_CREATED)
def processar_pagamento(
    dados: schemas.ProcessarPagamentoRequest,
    current_user: schemas.UsuarioProfile = Depends(get_current_staff_user),
    db: firestore.client = Depends(get_db)
):
    """Gera a cobrança PIX no ASAAS para as consultas selecionadas e cria a fatura."""
    try:
        return crud.processar_pagamento(db, dados.consulta_ids, current_user.id)
    except ValueError as e:
        logger.warning(f"Falha ao gerar cobrança: {e}")
        raise HTTPException(status_code=400, detail=str(e))


@router.patch("/faturas/{fatura_id}")
def editar_fatura(
    fatura_id: str,
    edicao: schemas.FaturaEdicao,
    admin: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
):
    try:
        return crud.editar_fatura(db, fatura_id, edicao, admin.id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/faturas/{fatura_id}", status_code=status.HTTP_204_NO_CONTENT)
def excluir_fatura(
    fatura_id: str,
    admin: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
):
    try:
        crud.excluir_fatura(db, fatura_id, admin.id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/faturas/{fatura_id}/emitir-nfe")
def emitir_nfe(
    fatura_id: str,
    admin: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
):
    try:
        return crud.emitir_nfe(db, fatura_id, admin.id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/faturas/{fatura_id}/receber-em-dinheiro")
def receber_em_dinheiro(
    fatura_id: str,
    dados: schemas.RecebimentoManualRequest,
    current_user: schemas.UsuarioProfile = Depends(get_current_staff_user),
    db: firestore.client = Depends(get_db)
):
    try:
        return crud.registrar_recebimento_manual(db, fatura_id, current_user.id, dados.valor, dados.data_pagamento)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
