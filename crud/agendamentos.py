# crud/agendamentos.py
"""
CRUD para gestão de agendamentos
"""

import logging
from typing import Optional, List, Dict
from firebase_admin import firestore
from google.api_core.exceptions import GoogleAPICallError
import schemas
from crud.utils import add_timestamps, buscar_documento, parse_datetime, FUSO_CLINICA
from crud.notifications import enfileirar_notificacao_push
from crud.google_calendar import sincronizar_agendamento
from services.google_calendar import GoogleCalendarError

logger = logging.getLogger(__name__)

STATUS_CONSULTA = ('agendado', 'confirmado', 'finalizado', 'cancelado', 'faltou')
STATUS_PAGAMENTO = ('pendente', 'cobranca_gerada', 'pago', 'cancelado')


def _formatar_data_hora(data_hora) -> str:
    local = parse_datetime(data_hora).astimezone(FUSO_CLINICA)
    return f"{local.strftime('%d/%m/%Y')} às {local.strftime('%H:%M')}"


def _notificar_e_sincronizar(db: firestore.client, agendamento: Dict, operacao: str, evento: str, titulo: str, corpo: str):
    """Push para o profissional e sincronização com o Google; falhas só vão para o log."""
    try:
        enfileirar_notificacao_push(
            db,
            user_id=agendamento['profissional_id'],
            title=titulo,
            body=corpo,
            event_type=evento,
            event_id=agendamento['id'],
            data={'agendamento_id': agendamento['id']},
        )
    except Exception as e:
        logger.error(f"Erro ao enfileirar push do agendamento {agendamento['id']}: {e}")

    try:
        sincronizar_agendamento(db, agendamento['id'], operacao)
    except (GoogleCalendarError, GoogleAPICallError, ValueError) as e:
        logger.error(f"Erro ao sincronizar agendamento {agendamento['id']} com o Google: {e}")


def buscar_agendamento_por_id(db: firestore.client, agendamento_id: str) -> Optional[Dict]:
    return buscar_documento(db, 'agendamentos', agendamento_id)


def criar_agendamento(db: firestore.client, agendamento_data: schemas.AgendamentoCreate, usuario_id: Optional[str] = None) -> Dict:
    """Cria o agendamento, desnormalizando nomes e o valor do serviço."""
    paciente = buscar_documento(db, 'pessoas', agendamento_data.paciente_id)
    profissional = buscar_documento(db, 'pessoas', agendamento_data.profissional_id)
    servico = buscar_documento(db, 'tipo_servicos', agendamento_data.tipo_servico_id)

    if not paciente or not profissional or not servico:
        raise ValueError("Paciente, profissional ou serviço não encontrado.")

    if agendamento_data.local_id and not buscar_documento(db, 'locais_atendimento', agendamento_data.local_id):
        raise ValueError("Local de atendimento não encontrado.")

    valor = agendamento_data.valor_servico if agendamento_data.valor_servico is not None else servico.get('valor', 0)

    agendamento_dict = {
        'paciente_id': paciente['id'],
        'paciente_nome': paciente.get('nome'),
        'profissional_id': profissional['id'],
        'profissional_nome': profissional.get('nome'),
        'tipo_servico_id': servico['id'],
        'servico_nome': servico.get('nome'),
        'valor_servico': float(valor or 0),
        'data_hora': agendamento_data.data_hora,
        'local_id': agendamento_data.local_id,
        'observacao': agendamento_data.observacao,
        'status_consulta': 'agendado',
        'status_pagamento': 'pendente',
        'possui_evolucao': 'nao',
        'responsavel_cobranca_id': paciente.get('responsavel_cobranca_id') or paciente['id'],
        'empresa_fatura_id': agendamento_data.empresa_fatura_id,
        'fatura_id': None,
        'id_pagamento_externo': None,
        'google_event_id': None,
        'google_synced_at': None,
        'agendado_por': usuario_id,
        'ativo': True,
    }

    doc_ref = db.collection('agendamentos').document()
    doc_ref.set(add_timestamps(agendamento_dict))
    agendamento_dict['id'] = doc_ref.id
    logger.info(f"Agendamento {doc_ref.id} criado para o paciente {paciente['id']}")

    _notificar_e_sincronizar(
        db, agendamento_dict, 'INSERT', 'appointment_created', 'Novo Agendamento!',
        f"Você tem um novo agendamento com {paciente.get('nome')} para {_formatar_data_hora(agendamento_data.data_hora)}.",
    )
    return agendamento_dict


def atualizar_agendamento(db: firestore.client, agendamento_id: str, update_data: schemas.AgendamentoUpdate) -> Optional[Dict]:
    """Atualiza status, pagamento, evolução, data ou observação."""
    agendamento_ref = db.collection('agendamentos').document(agendamento_id)
    agendamento_doc = agendamento_ref.get()
    if not agendamento_doc.exists:
        logger.warning(f"Agendamento {agendamento_id} não encontrado")
        return None

    update_dict = update_data.model_dump(exclude_unset=True)
    if update_dict.get('status_consulta') and update_dict['status_consulta'] not in STATUS_CONSULTA:
        raise ValueError(f"Status de consulta inválido: {update_dict['status_consulta']}")
    if update_dict.get('status_pagamento') and update_dict['status_pagamento'] not in STATUS_PAGAMENTO:
        raise ValueError(f"Status de pagamento inválido: {update_dict['status_pagamento']}")
    atual = agendamento_doc.to_dict()
    if atual.get('fatura_id') and 'status_pagamento' in update_dict \
            and update_dict['status_pagamento'] != atual.get('status_pagamento'):
        raise ValueError("Agendamento vinculado a uma fatura não pode ter o status de pagamento alterado.")

    agendamento_ref.update(add_timestamps(update_dict, is_update=True))
    agendamento = buscar_documento(db, 'agendamentos', agendamento_id)
    logger.info(f"Agendamento {agendamento_id} atualizado com sucesso")

    if 'data_hora' in update_dict or 'status_consulta' in update_dict:
        _notificar_e_sincronizar(
            db, agendamento, 'UPDATE', 'appointment_updated', 'Agendamento Atualizado',
            f"O agendamento de {agendamento.get('paciente_nome')} foi alterado para {_formatar_data_hora(agendamento['data_hora'])}.",
        )
    return agendamento


def cancelar_agendamento(db: firestore.client, agendamento_id: str, motivo: Optional[str] = None) -> Optional[Dict]:
    """
    Cancela o agendamento (status 'cancelado') e avisa o profissional.
    Agendamentos já cobrados não podem ser cancelados.
    """
    agendamento = buscar_documento(db, 'agendamentos', agendamento_id)
    if not agendamento:
        return None

    if agendamento.get('fatura_id'):
        raise ValueError("Agendamento vinculado a uma fatura não pode ser cancelado.")

    update = {'status_consulta': 'cancelado', 'updated_at': firestore.SERVER_TIMESTAMP}
    if motivo:
        update['observacao'] = motivo
    db.collection('agendamentos').document(agendamento_id).update(update)
    agendamento = buscar_documento(db, 'agendamentos', agendamento_id)

    _notificar_e_sincronizar(
        db, agendamento, 'UPDATE', 'appointment_cancelled', 'Agendamento Cancelado',
        f"O agendamento de {agendamento.get('paciente_nome')} em {_formatar_data_hora(agendamento['data_hora'])} foi cancelado.",
    )
    return agendamento


def excluir_agendamento(db: firestore.client, agendamento_id: str) -> bool:
    agendamento = buscar_documento(db, 'agendamentos', agendamento_id)
    if not agendamento:
        return False
    if agendamento.get('fatura_id'):
        raise ValueError("Agendamento vinculado a uma fatura não pode ser excluído.")

    db.collection('agendamentos').document(agendamento_id).update({
        'ativo': False,
        'updated_at': firestore.SERVER_TIMESTAMP,
    })
    try:
        sincronizar_agendamento(db, agendamento_id, 'DELETE')
    except (GoogleCalendarError, GoogleAPICallError, ValueError) as e:
        logger.error(f"Erro ao remover agendamento {agendamento_id} do Google: {e}")
    return True


def listar_agendamentos(db: firestore.client, profissional_id: Optional[str] = None, paciente_id: Optional[str] = None,
                        status_consulta: Optional[str] = None, data_inicio=None, data_fim=None) -> List[Dict]:
    query = db.collection('agendamentos').where('ativo', '==', True)
    if profissional_id:
        query = query.where('profissional_id', '==', profissional_id)
    if paciente_id:
        query = query.where('paciente_id', '==', paciente_id)
    if status_consulta:
        query = query.where('status_consulta', '==', status_consulta)

    inicio = parse_datetime(data_inicio)
    fim = parse_datetime(data_fim)

    agendamentos = []
    for doc in query.stream():
        ag_data = doc.to_dict()
        ag_data['id'] = doc.id
        data_hora = parse_datetime(ag_data.get('data_hora'))
        if inicio and data_hora < inicio:
            continue
        if fim and data_hora > fim:
            continue
        agendamentos.append(ag_data)

    agendamentos.sort(key=lambda a: parse_datetime(a['data_hora']))
    return agendamentos
