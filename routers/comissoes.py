# routers/comissoes.py
"""
Router das comissões dos profissionais por tipo de serviço
"""

from fastapi import APIRouter, Depends, HTTPException, status
from typing import Optional
import schemas
import crud
from database import get_db
from auth import get_current_admin_user, get_current_staff_user
from firebase_admin import firestore

router = APIRouter(tags=["Comissões"])


@router.get("/comissoes")
def listar_comissoes(
    page: int = 1,
    limit: int = 10,
    search: str = '',
    profissional_id: Optional[str] = None,
    servico_id: Optional[str] = None,
    ativo: Optional[bool] = None,
    current_user: schemas.UsuarioProfile = Depends(get_current_staff_user),
    db: firestore.client = Depends(get_db)
):
    if page < 1 or limit < 1:
        raise HTTPException(status_code=400, detail="Paginação inválida")
    return crud.listar_comissoes(db, page, limit, search, profissional_id, servico_id, ativo)


@router.post("/comissoes", status_code=status.HTTP_201_CREATED)
def criar_comissao(
    comissao_data: schemas.ComissaoCreate,
    admin: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
):
    try:
        return crud.criar_comissao(db, comissao_data, admin.id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/comissoes/{comissao_id}")
def obter_comissao(
    comissao_id: str,
    current_user: schemas.UsuarioProfile = Depends(get_current_staff_user),
    db: firestore.client = Depends(get_db)
):
    comissao = crud.buscar_comissao_por_id(db, comissao_id)
    if not comissao:
        raise HTTPException(status_code=404, detail="Comissão não encontrada")
    return comissao


@router.patch("/comissoes/{comissao_id}")
def atualizar_comissao(
    comissao_id: str,
    update_data: schemas.ComissaoUpdate,
    admin: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
):
    try:
        comissao = crud.atualizar_comissao(db, comissao_id, update_data, admin.id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not comissao:
        raise HTTPException(status_code=404, detail="Comissão não encontrada")
    return comissao


@router.patch("/comissoes/{comissao_id}/status")
def alterar_status_comissao(
    comissao_id: str,
    status_data: schemas.ComissaoStatusUpdate,
    admin: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
):
    try:
        comissao = crud.alterar_status_comissao(db, comissao_id, status_data.ativo, admin.id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not comissao:
        raise HTTPException(status_code=404, detail="Comissão não encontrada")
    return comissao


@router.delete("/comissoes/{comissao_id}", status_code=status.HTTP_204_NO_CONTENT)
def deletar_comissao(
    comissao_id: str,
    admin: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
):
    if not crud.deletar_comissao(db, comissao_id, admin.id):
        raise HTTPException(status_code=404, detail="Comissão não encontrada")


@router.post("/comissoes/{comissao_id}/calcular")
def calcular_comissao(
    comissao_id: str,
    dados: schemas.ComissaoCalculoRequest,
    current_user: schemas.UsuarioProfile = Depends(get_current_staff_user),
    db: firestore.client = Depends(get_db)
):
    """Valor que o profissional recebe por um atendimento com o valor informado."""
    comissao = crud.buscar_comissao_por_id(db, comissao_id)
    if not comissao:
        raise HTTPException(status_code=404, detail="Comissão não encontrada")
    return {
        "comissao_id": comissao_id,
        "valor_servico": dados.valor_servico,
        "valor_comissao": crud.calcular_valor_comissao(comissao, dados.valor_servico),
    }
