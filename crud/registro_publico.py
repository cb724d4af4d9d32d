# crud/registro_publico.py
"""
Cadastro público de pacientes (link enviado pelo WhatsApp):
log de eventos do formulário, finalização do cadastro e inclusão
de responsável financeiro.
"""

import logging
import re
from typing import Optional, List, Dict
from firebase_admin import firestore
import schemas
from crud.utils import (
    add_timestamps, agora_utc, buscar_documento, criar_documento,
    limpar_digitos, jid_para_telefone, normalizar_telefone_br, telefone_para_jid,
    validate_cep, validate_phone_number, FUSO_CLINICA,
)
from crud.validators import validar_cpf_mensagem, validar_cpf_opcional
from crud.webhooks import enfileirar_webhook
from services import webhooks as webhook_service
from services.webhooks import WebhookError

logger = logging.getLogger(__name__)


# =================================================================================
# LOG DE EVENTOS DO CADASTRO
# =================================================================================

def extrair_ip(headers) -> str:
    encaminhado = headers.get('x-forwarded-for')
    if encaminhado:
        return encaminhado.split(',')[0].strip()
    return headers.get('x-real-ip') or 'unknown'


def registrar_evento_cadastro(db: firestore.client, evento: schemas.RegistroEventoLog, ip_address: str) -> Dict:
    """Grava o evento; o formulário só é gravado quando vier junto com o nome da etapa."""
    logger.info(f"📋 Evento de cadastro: {evento.event_type} | Session: {evento.session_id} | Step: {evento.step_name or 'N/A'}")

    db.collection('public_registration_logs').document().set(add_timestamps({
        'session_id': evento.session_id,
        'event_type': evento.event_type,
        'step_name': evento.step_name,
        'error_message': evento.error_message,
        'error_stack': evento.error_stack,
        'ip_address': ip_address,
        'user_agent': evento.user_agent,
        'browser_info': evento.browser_info or {},
    }))

    if evento.form_data and evento.step_name:
        try:
            db.collection('public_registration_form_data').document().set(add_timestamps({
                'session_id': evento.session_id,
                'step_name': evento.step_name,
                'form_data': evento.form_data,
                'is_valid': evento.event_type == 'step_completed',
                'validation_errors': evento.form_data if evento.event_type == 'validation_error' else None,
            }))
        except Exception as e:
            logger.error(f"❌ Erro ao gravar dados do formulário: {e}")

    return {'success': True}


def listar_eventos_cadastro(db: firestore.client, session_id: Optional[str] = None,
                            event_type: Optional[str] = None, limite: int = 100) -> List[Dict]:
    query = db.collection('public_registration_logs')
    if session_id:
        query = query.where('session_id', '==', session_id)
    if event_type:
        query = query.where('event_type', '==', event_type)

    eventos = []
    for doc in query.order_by('created_at', direction=firestore.Query.DESCENDING).limit(limite).stream():
        evento = doc.to_dict()
        evento['id'] = doc.id
        eventos.append(evento)
    return eventos


# =================================================================================
# FINALIZAÇÃO DO CADASTRO
# =================================================================================

def buscar_ou_criar_endereco(db: firestore.client, endereco: schemas.EnderecoCadastro, somente_cep: bool = False) -> str:
    cep = limpar_digitos(endereco.cep)
    query = db.collection('enderecos').where('cep', '==', cep)
    if not somente_cep:
        query = query.where('logradouro', '==', endereco.logradouro) \
            .where('bairro', '==', endereco.bairro) \
            .where('cidade', '==', endereco.cidade) \
            .where('estado', '==', endereco.estado)

    existente = next(query.limit(1).stream(), None)
    if existente:
        return existente.id

    novo = criar_documento(db, 'enderecos', {
        'cep': cep,
        'logradouro': endereco.logradouro,
        'bairro': endereco.bairro,
        'cidade': endereco.cidade,
        'estado': endereco.estado,
        'ativo': True,
    })
    logger.info(f"Endereço {novo['id']} criado para o CEP {cep}")
    return novo['id']


def _criar_responsavel(db: firestore.client, dados: Dict) -> str:
    """Cria a pessoa responsável já apontando a cobrança para ela mesma."""
    pessoa_ref = db.collection('pessoas').document()
    dados = {**dados, 'tipo_pessoa': 'responsavel', 'responsavel_cobranca_id': pessoa_ref.id, 'ativo': True}
    pessoa_ref.set(add_timestamps(dados))
    return pessoa_ref.id


def _atualizar_endereco_pessoa(db: firestore.client, pessoa_id: str, endereco_id: str, endereco: schemas.EnderecoCadastro):
    db.collection('pessoas').document(pessoa_id).update({
        'id_endereco': endereco_id,
        'numero_endereco': endereco.numero,
        'complemento_endereco': endereco.complemento or None,
        'updated_at': firestore.SERVER_TIMESTAMP,
    })


def _vincular_responsavel(db: firestore.client, paciente_id: str, responsavel_id: str, tipo: str):
    criar_documento(db, 'pessoa_responsaveis', {
        'id_pessoa': paciente_id,
        'id_responsavel': responsavel_id,
        'tipo_responsabilidade': tipo,
        'ativo': True,
        'data_inicio': agora_utc().astimezone(FUSO_CLINICA).date().isoformat(),
        'data_fim': None,
    })


def preencher_template(conteudo: str, variaveis: Dict[str, str]) -> str:
    for chave, valor in variaveis.items():
        conteudo = re.sub(r'\{\{' + re.escape(chave) + r'\}\}', lambda _: valor or '', conteudo)
    return conteudo


def _template_contrato_ativo(db: firestore.client) -> Dict:
    templates = []
    for doc in db.collection('contract_templates').where('ativo', '==', True).stream():
        template = doc.to_dict()
        template['id'] = doc.id
        templates.append(template)
    if not templates:
        raise ValueError('Template de contrato não encontrado')
    return max(templates, key=lambda t: t.get('versao') or 0)


def _validar_documentos(dados: schemas.FinalizacaoCadastro):
    if not validate_cep(dados.endereco.cep):
        raise ValueError('CEP deve conter 8 dígitos')

    verificacoes = [validar_cpf_opcional(dados.paciente.cpf)]
    if dados.responsavel_legal and not (dados.existing_person_id and dados.existing_user_data):
        verificacoes.append(validar_cpf_mensagem(dados.responsavel_legal.cpf))
    if dados.new_person_data and not dados.responsavel_financeiro_mesmo_que_legal:
        verificacoes.append(validar_cpf_mensagem(dados.new_person_data.cpf))

    for valido, erro in verificacoes:
        if not valido:
            raise ValueError(erro)


def finalizar_cadastro_paciente(db: firestore.client, dados: schemas.FinalizacaoCadastro) -> Dict:
    """
    Cria todas as entidades do cadastro público, na ordem:
    endereço, responsável legal, responsável financeiro, pediatra, paciente,
    vínculos e contrato assinado.

    Raises:
        ValueError: dados faltando ou registros referenciados inexistentes
    """
    logger.info(f"🚀 Iniciando cadastro público do paciente {dados.paciente.nome}")

    if not dados.contract_variables:
        raise ValueError('Variáveis do contrato são obrigatórias')
    _validar_documentos(dados)

    endereco_id = buscar_ou_criar_endereco(db, dados.endereco)

    # Responsável legal
    if dados.existing_person_id and dados.existing_user_data:
        responsavel_legal_id = dados.existing_person_id
        _atualizar_endereco_pessoa(db, responsavel_legal_id, endereco_id, dados.endereco)
        logger.info(f"✅ Usando pessoa existente como responsável legal: {responsavel_legal_id}")
    else:
        if not dados.responsavel_legal:
            raise ValueError('Dados do responsável legal não fornecidos')
        telefone = jid_para_telefone(dados.whatsapp_jid) if dados.whatsapp_jid else limpar_digitos(dados.phone_number)
        responsavel_legal_id = _criar_responsavel(db, {
            'nome': dados.responsavel_legal.nome,
            'cpf_cnpj': dados.responsavel_legal.cpf,
            'telefone': telefone,
            'email': dados.responsavel_legal.email,
            'id_endereco': endereco_id,
            'numero_endereco': dados.endereco.numero,
            'complemento_endereco': dados.endereco.complemento or None,
        })
        logger.info(f"✅ Responsável legal criado: {responsavel_legal_id}")

    # Responsável financeiro
    if dados.responsavel_financeiro_mesmo_que_legal:
        responsavel_financeiro_id = responsavel_legal_id
    elif dados.responsavel_financeiro_existing_id:
        responsavel_financeiro_id = dados.responsavel_financeiro_existing_id
        existente = buscar_documento(db, 'pessoas', responsavel_financeiro_id)
        if not existente or not existente.get('ativo'):
            raise ValueError('Responsável financeiro não encontrado no sistema')
        _atualizar_endereco_pessoa(db, responsavel_financeiro_id, endereco_id, dados.endereco)
    elif dados.new_person_data:
        nova = dados.new_person_data
        telefone = jid_para_telefone(nova.whatsapp_jid) if nova.whatsapp_jid else limpar_digitos(nova.whatsapp)
        responsavel_financeiro_id = _criar_responsavel(db, {
            'nome': nova.nome,
            'cpf_cnpj': nova.cpf,
            'telefone': telefone,
            'email': nova.email,
            'id_endereco': endereco_id,
            'numero_endereco': dados.endereco.numero,
            'complemento_endereco': dados.endereco.complemento or None,
        })
        logger.info(f"✅ Responsável financeiro criado: {responsavel_financeiro_id}")
    else:
        raise ValueError('Dados do responsável financeiro não fornecidos')

    # Pediatra
    if dados.pediatra.id:
        pediatra_id = dados.pediatra.id
    else:
        pessoa_pediatra = criar_documento(db, 'pessoas', {
            'nome': dados.pediatra.nome,
            'tipo_pessoa': 'medico',
            'responsavel_cobranca_id': responsavel_financeiro_id,
            'ativo': True,
        })
        pediatra_id = criar_documento(db, 'pessoa_pediatra', {
            'pessoa_id': pessoa_pediatra['id'],
            'crm': dados.pediatra.crm or None,
            'especialidade': 'Pediatria',
            'ativo': True,
        })['id']
        logger.info(f"✅ Pediatra criado: {pediatra_id}")

    # Paciente
    paciente_id = criar_documento(db, 'pessoas', {
        'nome': dados.paciente.nome,
        'data_nascimento': dados.paciente.data_nascimento,
        'sexo': dados.paciente.sexo,
        'cpf_cnpj': dados.paciente.cpf or None,
        'tipo_pessoa': 'paciente',
        'id_endereco': endereco_id,
        'numero_endereco': dados.endereco.numero,
        'complemento_endereco': dados.endereco.complemento or None,
        'responsavel_cobranca_id': responsavel_financeiro_id,
        'autorizacao_uso_cientifico': dados.autorizacoes.uso_cientifico,
        'autorizacao_uso_redes_sociais': dados.autorizacoes.uso_redes_sociais,
        'autorizacao_uso_do_nome': dados.autorizacoes.uso_nome,
        'ativo': True,
    })['id']
    logger.info(f"✅ Paciente criado: {paciente_id}")

    # Vínculos
    if responsavel_financeiro_id == responsavel_legal_id:
        _vincular_responsavel(db, paciente_id, responsavel_legal_id, 'ambos')
    else:
        _vincular_responsavel(db, paciente_id, responsavel_legal_id, 'legal')
        _vincular_responsavel(db, paciente_id, responsavel_financeiro_id, 'financeiro')

    criar_documento(db, 'paciente_pediatra', {'paciente_id': paciente_id, 'pediatra_id': pediatra_id, 'ativo': True})

    # Contrato
    template = _template_contrato_ativo(db)
    agora = agora_utc()
    contrato_id = criar_documento(db, 'user_contracts', {
        'contract_template_id': template['id'],
        'pessoa_id': responsavel_financeiro_id,
        'nome_contrato': f"Contrato Fisioterapia - {dados.paciente.nome} - {agora.astimezone(FUSO_CLINICA).strftime('%d/%m/%Y')}",
        'conteudo_final': preencher_template(template.get('conteudo_template', ''), dados.contract_variables),
        'variaveis_utilizadas': dados.contract_variables,
        'status_contrato': 'assinado',
        'data_geracao': agora,
        'data_assinatura': agora,
        'assinatura_digital_id': f"whatsapp_{dados.whatsapp_jid or dados.phone_number}_{int(agora.timestamp() * 1000)}",
        'ativo': True,
    })['id']
    logger.info(f"✅ Contrato {contrato_id} assinado")

    if webhook_service.REGISTRATION_WEBHOOK_URL:
        try:
            webhook_service.enviar_webhook(webhook_service.REGISTRATION_WEBHOOK_URL, {
                'event': 'patient_registered',
                'pacienteId': paciente_id,
                'responsavelLegalId': responsavel_legal_id,
                'responsavelFinanceiroId': responsavel_financeiro_id,
                'contratoId': contrato_id,
                'timestamp': agora.isoformat(),
            })
        except WebhookError as e:
            logger.warning(f"⚠️ Webhook de cadastro falhou: {e.message}")

    return {
        'success': True,
        'pacienteId': paciente_id,
        'responsavelLegalId': responsavel_legal_id,
        'responsavelFinanceiroId': responsavel_financeiro_id,
        'contratoId': contrato_id,
        'message': 'Cadastro realizado com sucesso!',
    }


# =================================================================================
# RESPONSÁVEL FINANCEIRO
# =================================================================================

def _pessoa_ativa_por_telefone(db: firestore.client, telefone: str):
    query = db.collection('pessoas').where('telefone', '==', telefone).where('ativo', '==', True).limit(1)
    return next(query.stream(), None)


def adicionar_responsavel_financeiro(db: firestore.client, dados: schemas.AdicionarResponsavelFinanceiro) -> Dict:
    if not dados.responsible_phone or not dados.patient_ids:
        raise ValueError('Dados obrigatórios faltando')
    if not validate_phone_number(dados.responsible_phone):
        raise ValueError('Telefone do responsável inválido')

    telefone = normalizar_telefone_br(dados.responsible_phone)
    responsavel_doc = _pessoa_ativa_por_telefone(db, telefone)
    if not responsavel_doc:
        raise ValueError('Responsável não encontrado no sistema')
    responsavel = responsavel_doc.to_dict()

    financeiro = dados.financial_responsible
    telefone_financeiro = telefone

    if financeiro.is_self:
        financeiro_id = responsavel_doc.id
        financeiro_nome = responsavel.get('nome')
    else:
        if not financeiro.phone or not financeiro.nome:
            raise ValueError('Dados do responsável financeiro são obrigatórios')

        telefone_financeiro = normalizar_telefone_br(financeiro.phone)
        existente = _pessoa_ativa_por_telefone(db, telefone_financeiro)

        if existente:
            financeiro_id = existente.id
            financeiro_nome = existente.to_dict().get('nome')
            if financeiro.endereco and not financeiro.use_same_address:
                endereco_id = buscar_ou_criar_endereco(db, financeiro.endereco, somente_cep=True)
                existente.reference.update({
                    'id_endereco': endereco_id,
                    'numero_endereco': financeiro.endereco.numero,
                    'complemento_endereco': financeiro.endereco.complemento or None,
                    'email': financeiro.email or None,
                })
        else:
            endereco_id = None
            if financeiro.use_same_address:
                primeiro_paciente = buscar_documento(db, 'pessoas', dados.patient_ids[0])
                if primeiro_paciente:
                    endereco_id = primeiro_paciente.get('id_endereco')
            elif financeiro.endereco:
                endereco_id = buscar_ou_criar_endereco(db, financeiro.endereco, somente_cep=True)

            financeiro_id = _criar_responsavel(db, {
                'nome': financeiro.nome,
                'cpf_cnpj': limpar_digitos(financeiro.cpf) or None,
                'email': financeiro.email or None,
                'telefone': telefone_financeiro,
                'id_endereco': endereco_id,
                'numero_endereco': financeiro.endereco.numero if financeiro.endereco else None,
                'complemento_endereco': (financeiro.endereco.complemento if financeiro.endereco else None) or None,
            })
            financeiro_nome = financeiro.nome
            logger.info(f"✅ Responsável financeiro {financeiro_id} criado")

    pacientes_atualizados = []
    for paciente_id in dados.patient_ids:
        paciente = buscar_documento(db, 'pessoas', paciente_id)
        if not paciente or not paciente.get('ativo'):
            logger.warning(f"Paciente {paciente_id} não encontrado, ignorado")
            continue

        vinculos = db.collection('pessoa_responsaveis') \
            .where('id_pessoa', '==', paciente_id) \
            .where('id_responsavel', '==', financeiro_id) \
            .where('ativo', '==', True) \
            .stream()
        vinculo = next((v for v in vinculos if not v.to_dict().get('data_fim')), None)

        if vinculo:
            if vinculo.to_dict().get('tipo_responsabilidade') == 'legal':
                vinculo.reference.update({'tipo_responsabilidade': 'ambos'})
        else:
            _vincular_responsavel(db, paciente_id, financeiro_id, 'financeiro')

        db.collection('pessoas').document(paciente_id).update({'responsavel_cobranca_id': financeiro_id})
        pacientes_atualizados.append({'id': paciente_id, 'nome': paciente.get('nome')})

    enfileirar_webhook(db, 'novo_responsavel_financeiro', {
        'tipo': 'novo_responsavel_financeiro',
        'timestamp': agora_utc().isoformat(),
        'data': {
            'responsavel_financeiro_id': financeiro_id,
            'responsavel_financeiro_nome': financeiro_nome,
            'responsavel_financeiro_whatsapp': telefone_para_jid(telefone_financeiro),
            'pacientes': pacientes_atualizados,
        },
    })

    return {
        'success': True,
        'data': {
            'financialResponsibleId': financeiro_id,
            'financialResponsibleName': financeiro_nome,
            'patientsUpdated': len(pacientes_atualizados),
            'patients': pacientes_atualizados,
        },
    }
