# crud/produtos.py
"""
Cadastro rápido de produtos e busca aproximada (Levenshtein + tokens)
usada para sugerir produtos existentes a partir de uma descrição livre.
"""

import logging
import math
import re
import unicodedata
from typing import Optional, List, Dict
from firebase_admin import firestore
import schemas
from crud.utils import add_timestamps

logger = logging.getLogger(__name__)

COLECAO = 'produtos_servicos'
SCORE_MINIMO = 30
SCORE_SUGESTAO = 50
SCORE_DISPENSA_CRIACAO = 70


def _arredondar(valor: float) -> int:
    # meio para cima, como na tela de pré-lançamentos
    return int(math.floor(valor + 0.5))


def normalizar_texto(texto: str) -> str:
    texto = unicodedata.normalize('NFD', (texto or '').lower())
    texto = ''.join(c for c in texto if not unicodedata.combining(c))
    texto = re.sub(r'[^a-z0-9\s]', ' ', texto)
    return re.sub(r'\s+', ' ', texto).strip()


def tokenizar(texto: str) -> List[str]:
    return [t for t in normalizar_texto(texto).split(' ') if len(t) > 2]


def distancia_levenshtein(a: str, b: str) -> int:
    if not a:
        return len(b)
    if not b:
        return len(a)

    anterior = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        atual = [i]
        for j, char_b in enumerate(b, start=1):
            custo = 0 if char_a == char_b else 1
            atual.append(min(anterior[j] + 1, atual[j - 1] + 1, anterior[j - 1] + custo))
        anterior = atual
    return anterior[-1]


def similaridade_levenshtein(a: str, b: str) -> int:
    maior = max(len(a), len(b))
    if maior == 0:
        return 100
    return _arredondar((1 - distancia_levenshtein(a, b) / maior) * 100)


def similaridade_tokens(texto1: str, texto2: str) -> int:
    """Índice de Jaccard entre os conjuntos de palavras, de 0 a 100."""
    tokens1 = set(tokenizar(texto1))
    tokens2 = set(tokenizar(texto2))
    if not tokens1 or not tokens2:
        return 0
    return _arredondar(len(tokens1 & tokens2) / len(tokens1 | tokens2) * 100)


def pontuar_produto(descricao: str, produto: Dict) -> int:
    desc = normalizar_texto(descricao)
    nome = normalizar_texto(produto.get('nome', ''))
    codigo = normalizar_texto(produto.get('codigo', ''))

    if desc == nome or desc == codigo:
        return 100
    if desc in nome or nome in desc:
        return 90

    score_nome = similaridade_levenshtein(desc, nome)
    score_tokens = similaridade_tokens(descricao, produto.get('nome', ''))

    score_descricao = 0
    if produto.get('descricao'):
        score_descricao = max(
            similaridade_levenshtein(desc, normalizar_texto(produto['descricao'])),
            similaridade_tokens(descricao, produto['descricao']),
        )

    return _arredondar(max(score_nome * 0.3 + score_tokens * 0.7, score_descricao * 0.5))


def tipo_de_match(score: int) -> str:
    if score >= 95:
        return 'exact'
    if score >= 75:
        return 'high'
    if score >= 50:
        return 'medium'
    return 'low'


def gerar_codigo_produto(descricao: str) -> str:
    """Código sugerido: até 3 palavras, 4 letras cada. Ex.: 'Luva Nitrilica Azul' -> 'LUVA-NITR-AZUL'."""
    tokens = tokenizar(descricao)
    if not tokens:
        return 'PROD'
    return '-'.join(t[:4].upper() for t in tokens[:3]) or 'PROD'


def listar_produtos_ativos(db: firestore.client) -> List[Dict]:
    produtos = []
    for doc in db.collection(COLECAO).where('ativo', '==', True).stream():
        produto = doc.to_dict()
        produto['id'] = doc.id
        produtos.append(produto)
    produtos.sort(key=lambda p: p.get('nome', ''))
    return produtos


def buscar_produtos_similares(db: firestore.client, descricao: str, limite: int = 5) -> List[Dict]:
    if not descricao or len(descricao) < 3:
        return []

    matches = []
    for produto in listar_produtos_ativos(db):
        score = pontuar_produto(descricao, produto)
        if score >= SCORE_MINIMO:
            matches.append({'produto': produto, 'score': score, 'matchType': tipo_de_match(score)})

    matches.sort(key=lambda m: m['score'], reverse=True)
    return matches[:limite]


def sugerir_produto(db: firestore.client, descricao: str, categoria_id: Optional[str] = None) -> Dict:
    matches = buscar_produtos_similares(db, descricao)
    melhor = matches[0] if matches and matches[0]['score'] >= SCORE_SUGESTAO else None

    return {
        'descricao_original': descricao,
        'produto_match': melhor,
        'sugestao_criar': melhor is None or melhor['score'] < SCORE_DISPENSA_CRIACAO,
        'codigo_sugerido': gerar_codigo_produto(descricao),
        'categoria_sugerida_id': categoria_id,
    }


def criar_produto_rapido(db: firestore.client, produto_data: schemas.ProdutoRapidoCreate,
                         usuario_id: Optional[str] = None) -> Dict:
    codigo = produto_data.codigo.upper()

    existentes = db.collection(COLECAO).where('codigo', '==', codigo).limit(1).stream()
    if next(existentes, None) is not None:
        raise ValueError('Código já existe')

    produto_dict = {
        'codigo': codigo,
        'nome': produto_data.nome,
        'descricao': None,
        'unidade_medida': 'unidade',
        'categoria_contabil_id': produto_data.categoria_contabil_id,
        'preco_referencia': produto_data.preco_referencia,
        'ativo': True,
        'criado_por': usuario_id,
    }

    doc_ref = db.collection(COLECAO).document()
    doc_ref.set(add_timestamps(produto_dict))
    produto_dict['id'] = doc_ref.id

    logger.info(f"Produto {codigo} criado ({doc_ref.id})")
    return produto_dict
