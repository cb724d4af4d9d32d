# routers/webhooks.py
"""
Router de webhooks: cadastro de destinos, fila de envio e teste
"""

from fastapi import APIRouter, Depends, HTTPException, status
from typing import List
import schemas
import crud
from database import get_db
from auth import get_current_admin_user
from firebase_admin import firestore

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.get("")
def listar_webhooks(
    admin: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
) -> List[dict]:
    return crud.listar_webhooks(db)


@router.post("", status_code=status.HTTP_201_CREATED)
def criar_webhook(
    webhook_data: schemas.WebhookCreate,
    admin: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
):
    return crud.criar_webhook(db, webhook_data)


@router.patch("/{webhook_id}")
def atualizar_webhook(
    webhook_id: str,
    update_data: schemas.WebhookUpdate,
    admin: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
):
    webhook = crud.atualizar_webhook(db, webhook_id, update_data)
    if not webhook:
        raise HTTPException(status_code=404, detail="Webhook não encontrado")
    return webhook


@router.delete("/{webhook_id}", status_code=status.HTTP_204_NO_CONTENT)
def deletar_webhook(
    webhook_id: str,
    admin: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
):
    if not crud.deletar_webhook(db, webhook_id):
        raise HTTPException(status_code=404, detail="Webhook não encontrado")


@router.post("/{webhook_id}/testar")
def testar_webhook(
    webhook_id: str,
    admin: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
):
    """Envia um payload de teste para a URL e devolve o status HTTP recebido."""
    try:
        return crud.testar_webhook(db, webhook_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/fila/itens")
def listar_fila(
    limite: int = 100,
    admin: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
):
    return crud.listar_fila_webhooks(db, limite)


@router.post("/fila", status_code=status.HTTP_201_CREATED)
def enfileirar(
    dados: schemas.WebhookEnfileirar,
    admin: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
):
    return crud.enfileirar_webhook(db, dados.evento, dados.payload)


@router.post("/fila/{item_id}/reenviar", status_code=status.HTTP_201_CREATED)
def reenviar(
    item_id: str,
    admin: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
):
    item = crud.reenviar_webhook(db, item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Item da fila não encontrado")
    return item
