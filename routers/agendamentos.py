# routers/agendamentos.py
"""
Router para o sistema de agendamentos
"""

from fastapi import APIRouter, Depends, HTTPException, status
from typing import List, Optional
from datetime import datetime
import schemas
import crud
from database import get_db
from auth import get_current_profissional_user, get_current_staff_user
from firebase_admin import firestore

router = APIRouter(tags=["Agendamentos"])


def _agendamento_visivel(db: firestore.client, agendamento_id: str, current_user: schemas.UsuarioProfile) -> dict:
    """Carrega o agendamento; para profissionais, apenas os da própria agenda."""
    agendamento = crud.buscar_agendamento_por_id(db, agendamento_id)
    if not agendamento or not agendamento.get('ativo', True):
        raise HTTPException(status_code=404, detail="Agendamento não encontrado")
    if current_user.role == 'profissional' and agendamento.get('profissional_id') != current_user.id:
        raise HTTPException(status_code=404, detail="Agendamento não encontrado")
    return agendamento


@router.post("/agendamentos", response_model=schemas.AgendamentoResponse, status_code=status.HTTP_201_CREATED)
def criar_agendamento(
    agendamento_data: schemas.AgendamentoCreate,
    current_user: schemas.UsuarioProfile = Depends(get_current_profissional_user),
    db: firestore.client = Depends(get_db)
):
    """Cria um agendamento, avisa o profissional e sincroniza com o Google Calendar."""
    try:
        return crud.criar_agendamento(db, agendamento_data, current_user.id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/agendamentos", response_model=List[schemas.AgendamentoResponse])
def listar_agendamentos(
    profissional_id: Optional[str] = None,
    paciente_id: Optional[str] = None,
    status_consulta: Optional[str] = None,
    data_inicio: Optional[datetime] = None,
    data_fim: Optional[datetime] = None,
    current_user: schemas.UsuarioProfile = Depends(get_current_profissional_user),
    db: firestore.client = Depends(get_db)
):
    # Profissionais só enxergam a própria agenda
    if current_user.role == 'profissional':
        profissional_id = current_user.id
    return crud.listar_agendamentos(db, profissional_id, paciente_id, status_consulta, data_inicio, data_fim)


@router.get("/agendamentos/{agendamento_id}", response_model=schemas.AgendamentoResponse)
def obter_agendamento(
    agendamento_id: str,
    current_user: schemas.UsuarioProfile = Depends(get_current_profissional_user),
    db: firestore.client = Depends(get_db)
):
    return _agendamento_visivel(db, agendamento_id, current_user)


@router.patch("/agendamentos/{agendamento_id}", response_model=schemas.AgendamentoResponse)
def atualizar_agendamento(
    agendamento_id: str,
    update_data: schemas.AgendamentoUpdate,
    current_user: schemas.UsuarioProfile = Depends(get_current_profissional_user),
    db: firestore.client = Depends(get_db)
):
    """Atualiza status da consulta, pagamento, evolução ou data."""
    _agendamento_visivel(db, agendamento_id, current_user)
    try:
        agendamento = crud.atualizar_agendamento(db, agendamento_id, update_data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not agendamento:
        raise HTTPException(status_code=404, detail="Agendamento não encontrado")
    return agendamento


@router.post("/agendamentos/{agendamento_id}/cancelar", response_model=schemas.AgendamentoResponse)
def cancelar_agendamento(
    agendamento_id: str,
    cancelamento: schemas.AgendamentoCancelamento,
    current_user: schemas.UsuarioProfile = Depends(get_current_profissional_user),
    db: firestore.client = Depends(get_db)
):
    _agendamento_visivel(db, agendamento_id, current_user)
    try:
        agendamento = crud.cancelar_agendamento(db, agendamento_id, cancelamento.motivo)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not agendamento:
        raise HTTPException(status_code=404, detail="Agendamento não encontrado")
    return agendamento


@router.delete("/agendamentos/{agendamento_id}", status_code=status.HTTP_204_NO_CONTENT)
def excluir_agendamento(
    agendamento_id: str,
    current_user: schemas.UsuarioProfile = Depends(get_current_staff_user),
    db: firestore.client = Depends(get_db)
):
    try:
        excluido = crud.excluir_agendamento(db, agendamento_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not excluido:
        raise HTTPException(status_code=404, detail="Agendamento não encontrado")
