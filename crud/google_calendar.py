# crud/google_calendar.py
"""
Conexão OAuth dos profissionais com o Google Calendar e
sincronização dos agendamentos como eventos.
"""

import logging
from datetime import timedelta
from typing import Optional, List, Dict
from firebase_admin import firestore
from crud.utils import (
    agora_utc, buscar_documento, parse_datetime,
    encrypt_sensitive_fields, decrypt_sensitive_fields, FUSO_CLINICA,
)
from services import google_calendar as google

logger = logging.getLogger(__name__)

CAMPOS_TOKEN = ['google_access_token', 'google_refresh_token']
DURACAO_PADRAO_MINUTOS = 60

CORES_GOOGLE = {
    'blue': '9',
    'green': '10',
    'red': '11',
    'orange': '6',
    'purple': '3',
    'pink': '4',
    'yellow': '5',
    'gray': '8',
    'grey': '8',
    '#3b82f6': '9',
    '#22c55e': '10',
    '#ef4444': '11',
    '#f97316': '6',
    '#8b5cf6': '3',
    '#ec4899': '4',
    '#f59e0b': '5',
    '#6b7280': '8',
}
COR_CANCELADO = '8'
COR_PADRAO = '1'


# =================================================================================
# CONEXÃO OAUTH
# =================================================================================

def conectar_google_calendar(db: firestore.client, pessoa_id: str, code: str) -> Dict:
    """Troca o código OAuth por tokens e grava a conexão (tokens criptografados) na pessoa."""
    tokens = google.trocar_codigo_por_tokens(code)
    calendar_id = google.obter_calendario_primario(tokens['access_token'])
    expira_em = agora_utc() + timedelta(seconds=int(tokens.get('expires_in', 3600)))

    dados = encrypt_sensitive_fields({
        'google_access_token': tokens['access_token'],
        'google_refresh_token': tokens.get('refresh_token'),
    }, CAMPOS_TOKEN)
    dados.update({
        'google_calendar_id': calendar_id,
        'google_calendar_enabled': True,
        'google_token_expires_at': expira_em,
        'updated_at': firestore.SERVER_TIMESTAMP,
    })
    db.collection('pessoas').document(pessoa_id).update(dados)

    logger.info(f"📅 Google Calendar conectado para a pessoa {pessoa_id} ({calendar_id})")
    return {'success': True, 'calendar_id': calendar_id}


def desconectar_google_calendar(db: firestore.client, pessoa_id: str) -> bool:
    pessoa_ref = db.collection('pessoas').document(pessoa_id)
    if not pessoa_ref.get().exists:
        return False
    pessoa_ref.update({
        'google_access_token': None,
        'google_refresh_token': None,
        'google_calendar_id': None,
        'google_calendar_enabled': False,
        'google_token_expires_at': None,
        'updated_at': firestore.SERVER_TIMESTAMP,
    })
    logger.info(f"📅 Google Calendar desconectado para a pessoa {pessoa_id}")
    return True


def _access_token_valido(db: firestore.client, pessoa: Dict) -> str:
    tokens = decrypt_sensitive_fields(pessoa, CAMPOS_TOKEN)
    expira_em = parse_datetime(pessoa.get('google_token_expires_at'))
    if tokens.get('google_access_token') and expira_em and agora_utc() < expira_em:
        return tokens['google_access_token']

    logger.info(f"🔄 Renovando token do Google da pessoa {pessoa['id']}")
    novos = google.renovar_access_token(tokens.get('google_refresh_token'))
    db.collection('pessoas').document(pessoa['id']).update({
        **encrypt_sensitive_fields({'google_access_token': novos['access_token']}, ['google_access_token']),
        'google_token_expires_at': agora_utc() + timedelta(seconds=int(novos.get('expires_in', 3600))),
    })
    return novos['access_token']


# =================================================================================
# MONTAGEM DO EVENTO
# =================================================================================

def mapear_cor_servico(cor: Optional[str]) -> str:
    if not cor:
        return COR_PADRAO
    return CORES_GOOGLE.get(cor.lower().strip(), COR_PADRAO)


def _cancelado(agendamento: Dict) -> bool:
    return (agendamento.get('status_consulta') or '').lower() == 'cancelado'


def _juntar_endereco(endereco: Dict, numero: Optional[str], complemento: Optional[str]) -> str:
    partes = [
        endereco.get('logradouro'), numero, complemento, endereco.get('bairro'),
        endereco.get('cidade'), endereco.get('estado'), endereco.get('cep'),
    ]
    return ', '.join(str(p) for p in partes if p)


def obter_local_evento(db: firestore.client, agendamento: Dict) -> str:
    local = buscar_documento(db, 'locais_atendimento', agendamento.get('local_id'))
    if not local:
        return ''

    tipo_local = local.get('tipo_local')
    if tipo_local in ('clinica', 'externa'):
        endereco = buscar_documento(db, 'enderecos', local.get('id_endereco'))
        if not endereco:
            return local.get('nome') or ''
        return _juntar_endereco(endereco, local.get('numero_endereco'), local.get('complemento_endereco'))

    if tipo_local == 'domiciliar':
        paciente = buscar_documento(db, 'pessoas', agendamento.get('paciente_id')) or {}
        endereco = buscar_documento(db, 'enderecos', paciente.get('id_endereco'))
        if not endereco:
            return 'Atendimento Domiciliar'
        return _juntar_endereco(endereco, paciente.get('numero_endereco'), paciente.get('complemento_endereco'))

    return ''


def montar_descricao_evento(agendamento: Dict, local: str, responsavel_nome: Optional[str] = None) -> str:
    inicio = parse_datetime(agendamento['data_hora']).astimezone(FUSO_CLINICA)
    descricao = '❌❌❌ CONSULTA CANCELADA ❌❌❌\n\n' if _cancelado(agendamento) else ''
    descricao += (
        f"👤 Paciente: {agendamento.get('paciente_nome')}\n"
        f"👥 Responsável: {responsavel_nome or agendamento.get('paciente_nome')}\n"
        f"📅 Data: {inicio.strftime('%d/%m/%Y')} às {inicio.strftime('%H:%M')}\n"
        f"🏥 Tipo de Serviço: {agendamento.get('servico_nome') or 'Serviço'}\n"
        f"📍 Local: {local}"
    )
    if agendamento.get('observacao'):
        descricao += f"\n\n📝 Observações: {agendamento['observacao']}"
    return descricao.strip()


def montar_evento(agendamento: Dict, local: str, duracao_minutos: Optional[int] = None,
                  cor_servico: Optional[str] = None, responsavel_nome: Optional[str] = None) -> Dict:
    """Corpo do evento no formato da Calendar API, com horário de Brasília e lembrete de 1h."""
    inicio = parse_datetime(agendamento['data_hora']).astimezone(FUSO_CLINICA)
    fim = inicio + timedelta(minutes=duracao_minutos or DURACAO_PADRAO_MINUTOS)

    return {
        'summary': agendamento.get('paciente_nome'),
        'location': local,
        'description': montar_descricao_evento(agendamento, local, responsavel_nome),
        'start': {'dateTime': inicio.isoformat(timespec='seconds'), 'timeZone': 'America/Sao_Paulo'},
        'end': {'dateTime': fim.isoformat(timespec='seconds'), 'timeZone': 'America/Sao_Paulo'},
        'colorId': COR_CANCELADO if _cancelado(agendamento) else mapear_cor_servico(cor_servico),
        'reminders': {'useDefault': False, 'overrides': [{'method': 'popup', 'minutes': 60}]},
    }


def _responsavel_legal_nome(db: firestore.client, paciente_id: Optional[str]) -> Optional[str]:
    if not paciente_id:
        return None
    vinculos = db.collection('pessoa_responsaveis') \
        .where('id_pessoa', '==', paciente_id) \
        .where('ativo', '==', True) \
        .stream()
    for vinculo in vinculos:
        dados = vinculo.to_dict()
        if dados.get('tipo_responsabilidade') in ('legal', 'ambos'):
            responsavel = buscar_documento(db, 'pessoas', dados.get('id_responsavel'))
            if responsavel:
                return responsavel.get('nome')
    return None


def _destinatarios(db: firestore.client, agendamento: Dict) -> List[Dict]:
    profissional = buscar_documento(db, 'pessoas', agendamento.get('profissional_id'))
    if profissional and profissional.get('google_calendar_enabled') and profissional.get('google_refresh_token'):
        return [profissional]
    return []


# =================================================================================
# SINCRONIZAÇÃO
# =================================================================================

def sincronizar_agendamento(db: firestore.client, agendamento_id: str, operacao: str) -> Dict:
    """
    Reflete o agendamento no Google Calendar do profissional.

    operacao: 'INSERT', 'UPDATE' ou 'DELETE'. Agendamento inativo é tratado
    como DELETE. Falhas por destinatário entram em 'results' sem abortar.
    """
    agendamento = buscar_documento(db, 'agendamentos', agendamento_id)
    if not agendamento:
        raise ValueError('Agendamento não encontrado')

    destinatarios = _destinatarios(db, agendamento)
    if not destinatarios:
        return {'success': True, 'message': 'Profissional sem Google Calendar'}

    agendamento_ref = db.collection('agendamentos').document(agendamento_id)
    remover = operacao == 'DELETE' or not agendamento.get('ativo', True)

    evento = None
    if not remover:
        servico = buscar_documento(db, 'tipo_servicos', agendamento.get('tipo_servico_id')) or {}
        evento = montar_evento(
            agendamento,
            obter_local_evento(db, agendamento),
            servico.get('duracao_minutos'),
            servico.get('cor'),
            _responsavel_legal_nome(db, agendamento.get('paciente_id')),
        )

    results = []
    for pessoa in destinatarios:
        try:
            access_token = _access_token_valido(db, pessoa)
            calendar_id = pessoa.get('google_calendar_id') or 'primary'
            event_id = agendamento.get('google_event_id')

            if remover:
                if event_id:
                    google.deletar_evento(access_token, calendar_id, event_id)
                    agendamento_ref.update({'google_event_id': None, 'google_synced_at': None})
                    results.append({'recipient': pessoa.get('nome'), 'action': 'deleted'})
                else:
                    results.append({'recipient': pessoa.get('nome'), 'action': 'skipped (no event)'})
            elif operacao == 'UPDATE' and event_id:
                google.atualizar_evento(access_token, calendar_id, event_id, evento)
                results.append({'recipient': pessoa.get('nome'), 'action': 'updated'})
            else:
                novo_id = google.criar_evento(access_token, calendar_id, evento)
                if not event_id:
                    agendamento_ref.update({'google_event_id': novo_id})
                results.append({'recipient': pessoa.get('nome'), 'action': 'created', 'eventId': novo_id})
        except google.GoogleCalendarError as e:
            logger.error(f"❌ Erro ao sincronizar para {pessoa.get('nome')}: {e.message}")
            results.append({'recipient': pessoa.get('nome'), 'error': e.message})

    if operacao != 'DELETE':
        agendamento_ref.update({'google_synced_at': agora_utc()})

    return {'success': True, 'results': results}
