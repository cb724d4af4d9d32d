# crud/faturas.py
"""
CRUD de faturas e integração das cobranças com o ASAAS
"""

import logging
from datetime import datetime, timedelta, date
from typing import Optional, List, Dict
from firebase_admin import firestore
import schemas
from crud.utils import add_timestamps, buscar_documento, agora_utc, FUSO_CLINICA
from crud.cobranca import gerar_descricao_cobranca
from crud.validators import validar_responsavel_asaas, montar_mensagem_erro_asaas
from services import asaas
from services.asaas import AsaasError

logger = logging.getLogger(__name__)

STATUS_FATURA = ('pendente', 'pago', 'cancelado', 'atrasado', 'estornado')
STATUS_EDITAVEIS = ('pendente', 'atrasado')
STATUS_PAGAMENTO_ELEGIVEIS = ('pendente', 'cobranca_gerada')
DIAS_VENCIMENTO_COBRANCA = 2


def _hoje() -> date:
    return datetime.now(FUSO_CLINICA).date()


def buscar_api_key_empresa(db: firestore.client, empresa_id: str) -> Optional[str]:
    """Retorna a chave do ASAAS da empresa de faturamento, ou None se não houver."""
    empresa = buscar_documento(db, 'pessoa_empresas', empresa_id)
    if not empresa or not empresa.get('ativo', True):
        logger.error(f"❌ Empresa de faturamento {empresa_id} não encontrada ou inativa")
        return None
    if not empresa.get('api_token_externo'):
        logger.error(f"❌ Empresa {empresa.get('razao_social')} não possui API key configurada")
        return None
    return empresa['api_token_externo']


def _api_key_obrigatoria(db: firestore.client, empresa_id: str) -> str:
    api_key = buscar_api_key_empresa(db, empresa_id)
    if not api_key:
        raise ValueError("Empresa não possui API key do ASAAS configurada")
    return api_key


def _buscar_agendamentos(db: firestore.client, ids: List[str]) -> List[Dict]:
    """Carrega os agendamentos na ordem pedida; ids desconhecidos são recusados."""
    agendamentos = []
    for agendamento_id in ids:
        agendamento = buscar_documento(db, 'agendamentos', agendamento_id)
        if not agendamento or not agendamento.get('ativo', True):
            raise ValueError(f"Consulta não encontrada: {agendamento_id}")
        agendamentos.append(agendamento)
    return agendamentos


def _vincular_agendamentos(db: firestore.client, ids: List[str], fatura_id: str, id_asaas: str, usuario_id: str):
    if not ids:
        return
    batch = db.batch()
    for agendamento_id in ids:
        batch.update(db.collection('agendamentos').document(agendamento_id), {
            'fatura_id': fatura_id,
            'id_pagamento_externo': id_asaas,
            'status_pagamento': 'cobranca_gerada',
            'cobranca_gerada_em': agora_utc(),
            'cobranca_gerada_por': usuario_id,
            'atualizado_por': usuario_id,
            'updated_at': firestore.SERVER_TIMESTAMP,
        })
    batch.commit()
    logger.info(f"✅ {len(ids)} agendamentos vinculados à fatura {fatura_id}")


def _desvincular_agendamentos(db: firestore.client, ids: List[str], usuario_id: str):
    if not ids:
        return
    batch = db.batch()
    for agendamento_id in ids:
        batch.update(db.collection('agendamentos').document(agendamento_id), {
            'fatura_id': None,
            'id_pagamento_externo': None,
            'status_pagamento': 'pendente',
            'cobranca_gerada_em': None,
            'cobranca_gerada_por': None,
            'atualizado_por': usuario_id,
            'updated_at': firestore.SERVER_TIMESTAMP,
        })
    batch.commit()
    logger.info(f"✅ {len(ids)} agendamentos desvinculados")


def listar_consultas_elegiveis(db: firestore.client, responsavel_cobranca_id: str, fatura_id: Optional[str] = None) -> List[Dict]:
    """
    Lista as consultas que podem entrar em uma fatura do responsável: finalizadas,
    com evolução registrada, pagamento pendente e sem fatura (ou já na fatura em edição).
    """
    query = db.collection('agendamentos') \
        .where('responsavel_cobranca_id', '==', responsavel_cobranca_id) \
        .where('status_consulta', '==', 'finalizado') \
        .where('possui_evolucao', '==', 'sim') \
        .where('ativo', '==', True)

    consultas = []
    for doc in query.stream():
        consulta = doc.to_dict()
        consulta['id'] = doc.id
        if consulta.get('status_pagamento') not in STATUS_PAGAMENTO_ELEGIVEIS:
            continue
        if consulta.get('fatura_id') and consulta.get('fatura_id') != fatura_id:
            continue
        consultas.append(consulta)

    consultas.sort(key=lambda c: c.get('data_hora'), reverse=True)
    return consultas


def criar_fatura(db: firestore.client, fatura_data: schemas.FaturaCreate, usuario_id: Optional[str]) -> Dict:
    """Grava a fatura e vincula os agendamentos cobrados a ela."""
    fatura_dict = fatura_data.model_dump(exclude={'agendamento_ids'})
    fatura_dict.update({
        'status': 'pendente',
        'ativo': True,
        'link_nfe': None,
        'status_nfe': None,
        'criado_por': usuario_id,
    })

    doc_ref = db.collection('faturas').document()
    doc_ref.set(add_timestamps(fatura_dict))
    fatura_dict['id'] = doc_ref.id

    try:
        _vincular_agendamentos(db, fatura_data.agendamento_ids, doc_ref.id, fatura_data.id_asaas, usuario_id)
    except Exception as e:
        logger.error(f"⚠️ Erro ao vincular agendamentos à fatura {doc_ref.id}: {e}")

    logger.info(f"✅ Fatura {doc_ref.id} criada")
    return fatura_dict


def _cliente_asaas_do_responsavel(cliente: asaas.AsaasClient, db: firestore.client, responsavel: Dict, endereco: Dict) -> str:
    """Reaproveita o id_asaas do responsável, busca pelo CPF ou cria o cliente no ASAAS."""
    asaas_customer_id = responsavel.get('id_asaas')
    if asaas_customer_id:
        return asaas_customer_id

    busca = cliente.buscar_cliente_por_cpf(responsavel.get('cpf_cnpj'))
    if busca['found']:
        asaas_customer_id = busca['customer']['id']
        logger.info(f"Cliente já existente no Asaas: {asaas_customer_id}")
    else:
        numero = f"{responsavel.get('numero_endereco') or ''} {responsavel.get('complemento_endereco') or ''}".strip()
        novo_cliente = cliente.criar_cliente({
            'name': responsavel.get('nome'),
            'cpfCnpj': responsavel.get('cpf_cnpj'),
            'email': responsavel.get('email'),
            'mobilePhone': str(responsavel['telefone']) if responsavel.get('telefone') else None,
            'postalCode': endereco.get('cep'),
            'externalReference': responsavel['id'],
            'addressNumber': numero or None,
        })
        asaas_customer_id = novo_cliente['id']

    db.collection('pessoas').document(responsavel['id']).update({'id_asaas': asaas_customer_id})

    try:
        cliente.desabilitar_notificacoes(asaas_customer_id)
    except AsaasError as e:
        logger.warning(f"⚠️ Não foi possível desabilitar notificações do cliente {asaas_customer_id}: {e.message}")
    return asaas_customer_id


def processar_pagamento(db: firestore.client, consulta_ids: List[str], usuario_id: str) -> Dict:
    """
    Gera a cobrança PIX no ASAAS para um conjunto de consultas do mesmo responsável
    e registra a fatura correspondente.
    """
    if not consulta_ids:
        raise ValueError("Selecione ao menos uma consulta para cobrança")

    consultas = _buscar_agendamentos(db, consulta_ids)

    responsaveis = {c.get('responsavel_cobranca_id') for c in consultas}
    if len(responsaveis) != 1 or None in responsaveis:
        raise ValueError("As consultas devem ter o mesmo responsável pela cobrança")
    responsavel_id = responsaveis.pop()

    empresa_id = consultas[0].get('empresa_fatura_id')
    api_key = _api_key_obrigatoria(db, empresa_id)

    responsavel = buscar_documento(db, 'pessoas', responsavel_id)
    if not responsavel:
        raise ValueError("Responsável pela cobrança não encontrado")

    endereco = buscar_documento(db, 'enderecos', responsavel.get('id_endereco')) or {}
    validacao = validar_responsavel_asaas({**responsavel, 'cep': endereco.get('cep')})
    if not validacao['isValid']:
        raise ValueError(montar_mensagem_erro_asaas(validacao, responsavel.get('nome')))

    paciente = buscar_documento(db, 'pessoas', consultas[0].get('paciente_id')) or {}
    descricao = gerar_descricao_cobranca(db, consultas, paciente)
    valor_total = round(sum(float(c.get('valor_servico') or 0) for c in consultas), 2)
    vencimento = (_hoje() + timedelta(days=DIAS_VENCIMENTO_COBRANCA)).isoformat()

    try:
        with asaas.get_asaas_client(api_key) as cliente:
            asaas_customer_id = _cliente_asaas_do_responsavel(cliente, db, responsavel, endereco)
            pagamento = cliente.criar_pagamento({
                'customer': asaas_customer_id,
                'value': valor_total,
                'dueDate': vencimento,
                'description': descricao,
                'externalReference': ','.join(consulta_ids),
            })
    except AsaasError as e:
        raise ValueError(e.message)

    fatura = criar_fatura(db, schemas.FaturaCreate(
        id_asaas=pagamento['id'],
        valor_total=valor_total,
        descricao=descricao,
        empresa_id=empresa_id,
        responsavel_cobranca_id=responsavel_id,
        vencimento=vencimento,
        dados_asaas={'invoiceUrl': pagamento.get('invoiceUrl'), 'status': pagamento.get('status')},
        agendamento_ids=consulta_ids,
    ), usuario_id)

    return {
        'success': True,
        'asaasCustomerId': asaas_customer_id,
        'asaasPaymentId': pagamento['id'],
        'fatura': fatura,
    }


def editar_fatura(db: firestore.client, fatura_id: str, edicao: schemas.FaturaEdicao, usuario_id: str) -> Dict:
    """
    Adiciona ou remove consultas de uma fatura em aberto e atualiza a cobrança no ASAAS.

    Tudo é validado antes da chamada ao ASAAS: consultas a adicionar precisam existir e
    estar livres de fatura; consultas a remover precisam pertencer a esta fatura.
    """
    fatura = buscar_documento(db, 'faturas', fatura_id)
    if not fatura:
        raise ValueError("Fatura não encontrada")
    if fatura.get('status') not in STATUS_EDITAVEIS:
        raise ValueError(f"Fatura com status \"{fatura.get('status')}\" não pode ser editada")

    adicionar = list(dict.fromkeys(edicao.agendamentos_adicionar))
    remover = list(dict.fromkeys(edicao.agendamentos_remover))

    atuais = {}
    for doc in db.collection('agendamentos').where('fatura_id', '==', fatura_id).stream():
        consulta = doc.to_dict()
        consulta['id'] = doc.id
        atuais[doc.id] = consulta

    for agendamento_id in remover:
        if agendamento_id not in atuais:
            raise ValueError(f"Consulta {agendamento_id} não pertence a esta fatura")

    novas = _buscar_agendamentos(db, adicionar)
    for consulta in novas:
        if consulta.get('fatura_id'):
            raise ValueError(f"Consulta {consulta['id']} já está vinculada a uma fatura")
        if fatura.get('responsavel_cobranca_id') and \
                consulta.get('responsavel_cobranca_id') != fatura['responsavel_cobranca_id']:
            raise ValueError("As consultas devem ter o mesmo responsável pela cobrança")

    consultas_finais = [c for c_id, c in atuais.items() if c_id not in remover] + novas
    if not consultas_finais:
        raise ValueError("A fatura precisa ter ao menos uma consulta")

    novo_valor = edicao.novo_valor_total or round(sum(float(c.get('valor_servico') or 0) for c in consultas_finais), 2)
    if edicao.nova_descricao:
        nova_descricao = edicao.nova_descricao
    else:
        paciente = buscar_documento(db, 'pessoas', consultas_finais[0].get('paciente_id')) or {}
        nova_descricao = gerar_descricao_cobranca(db, consultas_finais, paciente)
    novo_vencimento = edicao.novo_vencimento or fatura.get('vencimento')

    api_key = _api_key_obrigatoria(db, fatura.get('empresa_id'))
    try:
        with asaas.get_asaas_client(api_key) as cliente:
            pagamento = cliente.atualizar_pagamento(fatura['id_asaas'], {
                'billingType': 'PIX',
                'value': novo_valor,
                'dueDate': novo_vencimento,
                'description': nova_descricao,
            })
    except AsaasError as e:
        raise ValueError(f"Erro no ASAAS: {e.message}")

    dados_asaas = dict(fatura.get('dados_asaas') or {})
    dados_asaas.update({'updated_at': agora_utc().isoformat(), 'updated_payment_data': pagamento})
    update_dict = {
        'valor_total': novo_valor,
        'descricao': nova_descricao,
        'vencimento': novo_vencimento,
        'dados_asaas': dados_asaas,
        'atualizado_por': usuario_id,
        'updated_at': firestore.SERVER_TIMESTAMP,
    }
    db.collection('faturas').document(fatura_id).update(update_dict)

    _desvincular_agendamentos(db, remover, usuario_id)
    _vincular_agendamentos(db, adicionar, fatura_id, fatura['id_asaas'], usuario_id)

    logger.info(f"✅ Fatura {fatura_id} editada")
    return buscar_documento(db, 'faturas', fatura_id)


def excluir_fatura(db: firestore.client, fatura_id: str, usuario_id: str) -> bool:
    """Cancela a cobrança no ASAAS, libera as consultas e desativa a fatura."""
    fatura = buscar_documento(db, 'faturas', fatura_id)
    if not fatura:
        raise ValueError("Fatura não encontrada")
    if fatura.get('status') == 'pago':
        raise ValueError("Faturas pagas não podem ser excluídas")

    api_key = _api_key_obrigatoria(db, fatura.get('empresa_id'))
    try:
        with asaas.get_asaas_client(api_key) as cliente:
            cliente.cancelar_pagamento(fatura['id_asaas'])
    except AsaasError as e:
        raise ValueError(f"Erro no ASAAS: {e.message}")

    vinculados = [doc.id for doc in db.collection('agendamentos').where('fatura_id', '==', fatura_id).stream()]
    _desvincular_agendamentos(db, vinculados, usuario_id)

    agora = datetime.now(FUSO_CLINICA).strftime('%d/%m/%Y %H:%M:%S')
    db.collection('faturas').document(fatura_id).update({
        'ativo': False,
        'observacoes': f"Fatura excluída em {agora} por admin",
        'atualizado_por': usuario_id,
        'updated_at': firestore.SERVER_TIMESTAMP,
    })
    logger.info(f"🗑️ Fatura {fatura_id} excluída")
    return True


def emitir_nfe(db: firestore.client, fatura_id: str, usuario_id: str) -> Dict:
    """Agenda e autoriza a nota fiscal de serviço de uma fatura paga."""
    fatura = buscar_documento(db, 'faturas', fatura_id)
    if not fatura:
        raise ValueError("Fatura não encontrada")
    if fatura.get('status') != 'pago':
        raise ValueError("Apenas faturas pagas podem ter NFe emitida")
    if fatura.get('link_nfe') and fatura.get('link_nfe') != 'erro':
        raise ValueError("Fatura já possui NFe ou está em processamento")

    fatura_ref = db.collection('faturas').document(fatura_id)
    fatura_ref.update({'link_nfe': 'sincronizando', 'status_nfe': None, 'atualizado_por': usuario_id})

    api_key = buscar_api_key_empresa(db, fatura.get('empresa_id'))
    if not api_key:
        fatura_ref.update({'link_nfe': 'erro', 'status_nfe': 'Empresa sem API key configurada'})
        raise ValueError("Empresa não possui API key do ASAAS configurada")

    try:
        with asaas.get_asaas_client(api_key) as cliente:
            nota = cliente.agendar_nota_fiscal({
                'payment': fatura['id_asaas'],
                'serviceDescription': fatura.get('descricao') or 'Serviços de fisioterapia',
                'observations': 'Emissão automática - Respira Kids',
                'value': fatura['valor_total'],
                'deductions': 0,
                'effectiveDate': _hoje().isoformat(),
                'municipalServiceCode': '0701',
                'municipalServiceName': 'Fisioterapia',
                'externalReference': f"RK-{fatura_id[:8]}",
                'updatePayment': False,
                'taxes': {'retainIss': False, 'iss': 5.0},
            })
            autorizacao = cliente.autorizar_nota_fiscal(nota['id'])
    except AsaasError as e:
        fatura_ref.update({'link_nfe': 'erro', 'status_nfe': e.message, 'atualizado_por': usuario_id})
        raise ValueError(e.message)
    except Exception as e:
        logger.error(f"❌ Erro inesperado ao emitir NFe da fatura {fatura_id}: {e}")
        fatura_ref.update({'link_nfe': 'erro', 'status_nfe': 'Erro inesperado ao emitir NFe',
                           'atualizado_por': usuario_id})
        raise

    fatura_ref.update({
        'link_nfe': 'sincronizando',
        'status_nfe': 'Emitida com sucesso - aguardando link',
        'atualizado_por': usuario_id,
    })
    logger.info(f"📄 NFe {nota['id']} emitida para a fatura {fatura_id}")
    return {
        'invoiceId': nota['id'],
        'link_nfe': autorizacao.get('pdfUrl') or autorizacao.get('linkToVisualize'),
    }


def registrar_recebimento_manual(db: firestore.client, fatura_id: str, usuario_id: str,
                                valor: Optional[float] = None, data_pagamento: Optional[str] = None) -> Dict:
    """
    Confirma no ASAAS um pagamento recebido em mãos e marca fatura e consultas como pagas.
    Sem valor ou data, usa o total da fatura e a data de hoje.
    """
    fatura = buscar_documento(db, 'faturas', fatura_id)
    if not fatura:
        raise ValueError("Fatura não encontrada")
    if fatura.get('status') == 'pago':
        raise ValueError("Esta fatura já foi marcada como paga")
    if fatura.get('status') == 'cancelado':
        raise ValueError("Não é possível receber pagamento de fatura cancelada")
    if not fatura.get('id_asaas'):
        raise ValueError("Fatura não possui ID do ASAAS. Não é possível confirmar recebimento.")

    api_key = _api_key_obrigatoria(db, fatura.get('empresa_id'))
    try:
        with asaas.get_asaas_client(api_key) as cliente:
            cliente.receber_em_dinheiro(
                fatura['id_asaas'],
                valor if valor is not None else fatura['valor_total'],
                data_pagamento or _hoje().isoformat(),
            )
    except AsaasError as e:
        raise ValueError(e.message)

    db.collection('faturas').document(fatura_id).update({
        'status': 'pago',
        'pago_em': agora_utc(),
        'atualizado_por': usuario_id,
        'updated_at': firestore.SERVER_TIMESTAMP,
    })

    batch = db.batch()
    for doc in db.collection('agendamentos').where('fatura_id', '==', fatura_id).stream():
        batch.update(doc.reference, {'status_pagamento': 'pago', 'atualizado_por': usuario_id})
    batch.commit()

    logger.info(f"💵 Recebimento manual confirmado para a fatura {fatura_id}")
    return buscar_documento(db, 'faturas', fatura_id)


def listar_faturas(db: firestore.client, status: Optional[str] = None, responsavel_id: Optional[str] = None,
                   paciente_id: Optional[str] = None) -> List[Dict]:
    """Lista as faturas ativas, mais novas primeiro."""
    query = db.collection('faturas').where('ativo', '==', True)
    if status:
        query = query.where('status', '==', status)
    if responsavel_id:
        query = query.where('responsavel_cobranca_id', '==', responsavel_id)

    ids_paciente = _faturas_do_paciente(db, paciente_id) if paciente_id else None

    faturas = []
    for doc in query.stream():
        if ids_paciente is not None and doc.id not in ids_paciente:
            continue
        fatura = doc.to_dict()
        fatura['id'] = doc.id
        faturas.append(fatura)
    faturas.sort(key=lambda f: f.get('vencimento') or '', reverse=True)
    return faturas


def _faturas_do_paciente(db: firestore.client, paciente_id: str) -> set:
    ids = set()
    for doc in db.collection('agendamentos').where('paciente_id', '==', paciente_id).stream():
        fatura_id = doc.to_dict().get('fatura_id')
        if fatura_id:
            ids.add(fatura_id)
    return ids


def calcular_metricas_faturas(db: firestore.client, paciente_id: Optional[str] = None) -> Dict:
    """Totais por status e quantidade de faturas em aberto que vencem nos próximos 7 dias."""
    metricas = {
        'total_faturas': 0,
        'valor_total': 0.0,
        'valor_pendente': 0.0,
        'valor_pago': 0.0,
        'valor_atrasado': 0.0,
        'faturas_vencendo': 0,
    }

    ids_paciente = None
    if paciente_id:
        ids_paciente = _faturas_do_paciente(db, paciente_id)
        if not ids_paciente:
            return metricas

    hoje = _hoje()
    for doc in db.collection('faturas').where('ativo', '==', True).stream():
        if ids_paciente is not None and doc.id not in ids_paciente:
            continue
        fatura = doc.to_dict()
        valor = float(fatura.get('valor_total') or 0)
        metricas['total_faturas'] += 1
        metricas['valor_total'] += valor

        status = fatura.get('status')
        if status == 'pago':
            metricas['valor_pago'] += valor
        elif status == 'pendente':
            metricas['valor_pendente'] += valor
        elif status == 'atrasado':
            metricas['valor_atrasado'] += valor

        if fatura.get('vencimento') and status != 'pago':
            dias = (date.fromisoformat(fatura['vencimento']) - hoje).days
            if 0 <= dias <= 7:
                metricas['faturas_vencendo'] += 1

    return metricas
