# routers/produtos.py
"""
Router de produtos/serviços: busca por similaridade e cadastro rápido
"""

from fastapi import APIRouter, Depends, HTTPException, status
import schemas
import crud
from database import get_db
from auth import get_current_staff_user
from firebase_admin import firestore

router = APIRouter(tags=["Produtos"])


@router.get("/produtos/similares")
def buscar_produtos_similares(
    descricao: str,
    limite: int = 5,
    current_user: schemas.UsuarioProfile = Depends(get_current_staff_user),
    db: firestore.client = Depends(get_db)
):
    """Produtos ativos parecidos com a descrição (score mínimo 30), do mais parecido ao menos."""
    return crud.buscar_produtos_similares(db, descricao, limite)


@router.post("/produtos/sugestao")
def sugerir_produto(
    dados: schemas.ProdutoSugestaoRequest,
    current_user: schemas.UsuarioProfile = Depends(get_current_staff_user),
    db: firestore.client = Depends(get_db)
):
    return crud.sugerir_produto(db, dados.descricao, dados.categoria_id)


@router.post("/produtos/rapido", status_code=status.HTTP_201_CREATED)
def criar_produto_rapido(
    produto_data: schemas.ProdutoRapidoCreate,
    current_user: schemas.UsuarioProfile = Depends(get_current_staff_user),
    db: firestore.client = Depends(get_db)
):
    try:
        return crud.criar_produto_rapido(db, produto_data, current_user.id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
