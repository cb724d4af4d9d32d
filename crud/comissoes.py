# crud/comissoes.py
"""
CRUD das comissões pagas aos profissionais por tipo de serviço
"""

import logging
import math
from typing import Optional, List, Dict
from firebase_admin import firestore
import schemas
from crud.utils import add_timestamps, buscar_documento

logger = logging.getLogger(__name__)

COLECAO = 'comissao_profissional'


def _validar_valores(tipo_recebimento: str, valor_fixo: Optional[float], valor_percentual: Optional[float]):
    if tipo_recebimento == 'fixo' and valor_fixo is None:
        raise ValueError('Valor fixo é obrigatório para tipo "fixo"')
    if tipo_recebimento == 'percentual' and valor_percentual is None:
        raise ValueError('Valor percentual é obrigatório para tipo "percentual"')


def _existe_comissao_ativa(db: firestore.client, profissional_id: str, servico_id: str, ignorar_id: Optional[str] = None) -> bool:
    query = db.collection(COLECAO) \
        .where('id_profissional', '==', profissional_id) \
        .where('id_servico', '==', servico_id) \
        .where('ativo', '==', True)
    return any(doc.id != ignorar_id for doc in query.stream())


def _com_nomes(db: firestore.client, comissao: Dict) -> Dict:
    profissional = buscar_documento(db, 'pessoas', comissao.get('id_profissional')) or {}
    servico = buscar_documento(db, 'tipo_servicos', comissao.get('id_servico')) or {}
    comissao['profissional_nome'] = profissional.get('nome', '')
    comissao['servico_nome'] = servico.get('nome', '')
    return comissao


def criar_comissao(db: firestore.client, comissao_data: schemas.ComissaoCreate, usuario_id: Optional[str] = None) -> Dict:
    """Cria a comissão; só pode haver uma ativa por profissional e serviço."""
    _validar_valores(comissao_data.tipo_recebimento, comissao_data.valor_fixo, comissao_data.valor_percentual)

    if _existe_comissao_ativa(db, comissao_data.id_profissional, comissao_data.id_servico):
        raise ValueError('Já existe uma comissão ativa para este profissional e serviço')

    comissao_dict = {
        'id_profissional': comissao_data.id_profissional,
        'id_servico': comissao_data.id_servico,
        'tipo_recebimento': comissao_data.tipo_recebimento,
        'valor_fixo': comissao_data.valor_fixo if comissao_data.tipo_recebimento == 'fixo' else None,
        'valor_percentual': comissao_data.valor_percentual if comissao_data.tipo_recebimento == 'percentual' else None,
        'ativo': True,
        'criado_por': usuario_id,
        'atualizado_por': None,
    }

    doc_ref = db.collection(COLECAO).document()
    doc_ref.set(add_timestamps(comissao_dict))
    comissao_dict['id'] = doc_ref.id

    logger.info(f"Comissão {doc_ref.id} criada para o profissional {comissao_data.id_profissional}")
    return _com_nomes(db, comissao_dict)


def buscar_comissao_por_id(db: firestore.client, comissao_id: str) -> Optional[Dict]:
    comissao = buscar_documento(db, COLECAO, comissao_id)
    return _com_nomes(db, comissao) if comissao else None


def atualizar_comissao(db: firestore.client, comissao_id: str, update_data: schemas.ComissaoUpdate,
                       usuario_id: Optional[str] = None) -> Optional[Dict]:
    """Atualiza a comissão; ao trocar o tipo, o valor do outro tipo é limpo."""
    comissao_ref = db.collection(COLECAO).document(comissao_id)
    comissao_doc = comissao_ref.get()
    if not comissao_doc.exists:
        logger.warning(f"Comissão {comissao_id} não encontrada")
        return None

    update_dict = update_data.model_dump(exclude_unset=True)
    if update_dict.get('tipo_recebimento'):
        tipo = update_dict['tipo_recebimento']
        _validar_valores(tipo, update_dict.get('valor_fixo'), update_dict.get('valor_percentual'))
        if tipo == 'fixo':
            update_dict['valor_percentual'] = None
        else:
            update_dict['valor_fixo'] = None

    atual = comissao_doc.to_dict()
    profissional_id = update_dict.get('id_profissional', atual.get('id_profissional'))
    servico_id = update_dict.get('id_servico', atual.get('id_servico'))
    if atual.get('ativo') and _existe_comissao_ativa(db, profissional_id, servico_id, ignorar_id=comissao_id):
        raise ValueError('Já existe uma comissão ativa para este profissional e serviço')

    update_dict['atualizado_por'] = usuario_id
    comissao_ref.update(add_timestamps(update_dict, is_update=True))

    logger.info(f"Comissão {comissao_id} atualizada")
    return buscar_comissao_por_id(db, comissao_id)


def deletar_comissao(db: firestore.client, comissao_id: str, usuario_id: Optional[str] = None) -> bool:
    """Exclusão lógica: a comissão fica inativa."""
    comissao_ref = db.collection(COLECAO).document(comissao_id)
    if not comissao_ref.get().exists:
        return False
    comissao_ref.update({'ativo': False, 'atualizado_por': usuario_id, 'updated_at': firestore.SERVER_TIMESTAMP})
    logger.info(f"Comissão {comissao_id} desativada")
    return True


def alterar_status_comissao(db: firestore.client, comissao_id: str, ativo: bool, usuario_id: Optional[str] = None) -> Optional[Dict]:
    comissao_ref = db.collection(COLECAO).document(comissao_id)
    comissao_doc = comissao_ref.get()
    if not comissao_doc.exists:
        return None

    atual = comissao_doc.to_dict()
    if ativo and _existe_comissao_ativa(db, atual['id_profissional'], atual['id_servico'], ignorar_id=comissao_id):
        raise ValueError('Já existe uma comissão ativa para este profissional e serviço')

    comissao_ref.update({'ativo': ativo, 'atualizado_por': usuario_id, 'updated_at': firestore.SERVER_TIMESTAMP})
    return buscar_comissao_por_id(db, comissao_id)


def listar_comissoes(db: firestore.client, page: int = 1, limit: int = 10, search: str = '',
                     profissional_id: Optional[str] = None, servico_id: Optional[str] = None,
                     ativo: Optional[bool] = None) -> Dict:
    """Lista comissões com filtros, busca por nome do profissional/serviço e paginação."""
    query = db.collection(COLECAO)
    if profissional_id:
        query = query.where('id_profissional', '==', profissional_id)
    if servico_id:
        query = query.where('id_servico', '==', servico_id)
    if ativo is not None:
        query = query.where('ativo', '==', ativo)

    comissoes = []
    for doc in query.stream():
        comissao = doc.to_dict()
        comissao['id'] = doc.id
        comissoes.append(_com_nomes(db, comissao))

    if search:
        termo = search.lower()
        comissoes = [c for c in comissoes
                     if termo in c['profissional_nome'].lower() or termo in c['servico_nome'].lower()]

    comissoes.sort(key=lambda c: str(c.get('created_at') or ''), reverse=True)

    total = len(comissoes)
    inicio = (page - 1) * limit
    return {
        'data': comissoes[inicio:inicio + limit],
        'pagination': {
            'page': page,
            'limit': limit,
            'total': total,
            'totalPages': math.ceil(total / limit) if limit else 0,
        },
    }


def calcular_valor_comissao(comissao: Dict, valor_servico: float) -> float:
    """Valor que o profissional recebe por um atendimento."""
    if not comissao or not comissao.get('ativo', True):
        return 0.0
    if comissao.get('tipo_recebimento') == 'fixo':
        return round(float(comissao.get('valor_fixo') or 0), 2)
    return round(float(valor_servico or 0) * float(comissao.get('valor_percentual') or 0) / 100, 2)
