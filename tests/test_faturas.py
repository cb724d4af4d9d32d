import json
from datetime import timedelta

import httpx
import pytest

import crud
import schemas
from crud import faturas
from services import asaas

CPF_RESPONSAVEL = "52998224725"


@pytest.fixture
def chamadas_asaas(monkeypatch, mock_http):
    """Substitui o ASAAS por um transporte em memória e registra as chamadas."""
    chamadas = []

    def handler(request: httpx.Request):
        corpo = json.loads(request.content) if request.content else None
        chamadas.append((request.method, request.url.path, corpo, request))
        caminho = request.url.path
        if request.method == "GET" and caminho.endswith("/customers"):
            return httpx.Response(200, json={"data": []})
        if request.method == "POST" and caminho.endswith("/customers"):
            return httpx.Response(200, json={"id": "cus_123"})
        if request.method == "PUT" and caminho.endswith("/notifications/batch"):
            return httpx.Response(200, json={})
        if request.method == "POST" and caminho.endswith("/payments"):
            return httpx.Response(200, json={"id": "pay_456", "invoiceUrl": "https://asaas/pay_456", "status": "PENDING"})
        if request.method == "PUT" and "/payments/" in caminho:
            return httpx.Response(200, json={"id": "pay_456", "value": corpo["value"], "status": "PENDING"})
        if request.method == "DELETE":
            return httpx.Response(200, json={"deleted": True})
        if caminho.endswith("/receiveInCash"):
            return httpx.Response(200, json={"status": "RECEIVED_IN_CASH"})
        if caminho.endswith("/invoices"):
            return httpx.Response(200, json={"id": "inv_1"})
        if caminho.endswith("/authorize"):
            return httpx.Response(200, json={"id": "inv_1", "pdfUrl": "https://asaas/nfe.pdf"})
        return httpx.Response(404, json={"errors": [{"description": "rota desconhecida"}]})

    monkeypatch.setattr(
        asaas, "get_asaas_client",
        lambda api_key: asaas.AsaasClient(api_key, "https://asaas.test/v3", http_client=mock_http(handler)),
    )
    return chamadas


@pytest.fixture
def dados_cobranca(db):
    db.inserir('pessoa_empresas', 'emp-1', {'razao_social': 'Respira Kids LTDA', 'api_token_externo': '$aact_chave', 'ativo': True})
    db.inserir('enderecos', 'end-1', {'cep': '01310100'})
    db.inserir('pessoas', 'resp-1', {
        'nome': 'Maria Souza', 'cpf_cnpj': CPF_RESPONSAVEL, 'email': 'maria@gmail.com',
        'telefone': 5511999998888, 'id_endereco': 'end-1', 'numero_endereco': '100',
        'complemento_endereco': 'ap 12', 'ativo': True,
    })
    db.inserir('pessoas', 'pac-1', {'nome': 'Pedro Souza', 'ativo': True})
    db.inserir('pessoas', 'prof-1', {'nome': 'Ana Lima', 'cpf_cnpj': '11144477735'})
    for indice, data in enumerate(['2025-02-01T13:00:00Z', '2025-02-08T13:00:00Z'], start=1):
        db.inserir('agendamentos', f'ag-{indice}', {
            'data_hora': data, 'paciente_id': 'pac-1', 'profissional_id': 'prof-1',
            'responsavel_cobranca_id': 'resp-1', 'empresa_fatura_id': 'emp-1',
            'servico_nome': 'Sessão', 'valor_servico': 150.0, 'status_consulta': 'finalizado',
            'possui_evolucao': 'sim', 'status_pagamento': 'pendente', 'ativo': True,
        })
    return db


def test_processar_pagamento_cria_cliente_cobranca_e_fatura(dados_cobranca, chamadas_asaas):
    db = dados_cobranca
    resultado = crud.processar_pagamento(db, ['ag-1', 'ag-2'], 'admin-1')

    assert resultado['asaasCustomerId'] == 'cus_123'
    assert resultado['asaasPaymentId'] == 'pay_456'

    metodos = [(m, p) for m, p, _, _ in chamadas_asaas]
    assert metodos == [
        ('GET', '/v3/customers'),
        ('POST', '/v3/customers'),
        ('PUT', '/v3/notifications/batch'),
        ('POST', '/v3/payments'),
    ]

    cliente = chamadas_asaas[1][2]
    assert cliente['externalReference'] == 'resp-1'
    assert cliente['addressNumber'] == '100 ap 12'
    assert cliente['mobilePhone'] == '5511999998888'
    assert chamadas_asaas[1][3].headers['access_token'] == '$aact_chave'

    pagamento = chamadas_asaas[3][2]
    assert pagamento['billingType'] == 'PIX'
    assert pagamento['value'] == 300.0
    assert pagamento['externalReference'] == 'ag-1,ag-2'
    assert pagamento['dueDate'] == (faturas._hoje() + timedelta(days=2)).isoformat()
    assert pagamento['description'].startswith('2 sessões. Atendimento realizado ao paciente Pedro Souza')

    assert db.dados('pessoas', 'resp-1')['id_asaas'] == 'cus_123'
    fatura_id = resultado['fatura']['id']
    assert db.dados('faturas', fatura_id)['status'] == 'pendente'
    for agendamento_id in ('ag-1', 'ag-2'):
        agendamento = db.dados('agendamentos', agendamento_id)
        assert agendamento['fatura_id'] == fatura_id
        assert agendamento['status_pagamento'] == 'cobranca_gerada'
        assert agendamento['id_pagamento_externo'] == 'pay_456'


def test_processar_pagamento_reaproveita_cliente_existente(dados_cobranca, chamadas_asaas):
    dados_cobranca.collection('pessoas').document('resp-1').update({'id_asaas': 'cus_antigo'})

    resultado = crud.processar_pagamento(dados_cobranca, ['ag-1'], 'admin-1')

    assert resultado['asaasCustomerId'] == 'cus_antigo'
    assert [p for _, p, _, _ in chamadas_asaas] == ['/v3/payments']


def test_processar_pagamento_exige_dados_do_responsavel(dados_cobranca, chamadas_asaas):
    dados_cobranca.collection('pessoas').document('resp-1').update({'email': None})

    with pytest.raises(ValueError) as erro:
        crud.processar_pagamento(dados_cobranca, ['ag-1'], 'admin-1')

    assert '• Email' in str(erro.value)
    assert chamadas_asaas == []


def test_processar_pagamento_responsaveis_diferentes(dados_cobranca, chamadas_asaas):
    dados_cobranca.collection('agendamentos').document('ag-2').update({'responsavel_cobranca_id': 'outro'})
    with pytest.raises(ValueError, match='mesmo responsável'):
        crud.processar_pagamento(dados_cobranca, ['ag-1', 'ag-2'], 'admin-1')


def test_empresa_sem_api_key(dados_cobranca, chamadas_asaas):
    dados_cobranca.collection('pessoa_empresas').document('emp-1').update({'api_token_externo': None})
    with pytest.raises(ValueError, match='API key'):
        crud.processar_pagamento(dados_cobranca, ['ag-1'], 'admin-1')


def test_consultas_elegiveis(dados_cobranca):
    db = dados_cobranca
    db.collection('agendamentos').document('ag-2').update({'fatura_id': 'fat-9', 'status_pagamento': 'cobranca_gerada'})

    assert [c['id'] for c in crud.listar_consultas_elegiveis(db, 'resp-1')] == ['ag-1']
    assert [c['id'] for c in crud.listar_consultas_elegiveis(db, 'resp-1', 'fat-9')] == ['ag-2', 'ag-1']


def test_excluir_fatura_cancela_e_libera_consultas(dados_cobranca, chamadas_asaas):
    db = dados_cobranca
    fatura = crud.processar_pagamento(db, ['ag-1', 'ag-2'], 'admin-1')['fatura']

    assert crud.excluir_fatura(db, fatura['id'], 'admin-1') is True

    assert chamadas_asaas[-1][0:2] == ('DELETE', '/v3/payments/pay_456')
    registro = db.dados('faturas', fatura['id'])
    assert registro['ativo'] is False
    assert registro['observacoes'].startswith('Fatura excluída em ')
    assert db.dados('agendamentos', 'ag-1')['fatura_id'] is None
    assert db.dados('agendamentos', 'ag-1')['status_pagamento'] == 'pendente'


def test_fatura_paga_nao_pode_ser_excluida(db):
    db.inserir('faturas', 'fat-1', {'status': 'pago', 'ativo': True})
    with pytest.raises(ValueError, match='pagas'):
        crud.excluir_fatura(db, 'fat-1', 'admin-1')


def test_recebimento_manual_usa_total_e_data_de_hoje(dados_cobranca, chamadas_asaas):
    db = dados_cobranca
    fatura = crud.processar_pagamento(db, ['ag-1', 'ag-2'], 'admin-1')['fatura']

    atualizada = crud.registrar_recebimento_manual(db, fatura['id'], 'sec-1')

    corpo = chamadas_asaas[-1][2]
    assert corpo == {'paymentDate': faturas._hoje().isoformat(), 'value': 300.0, 'notifyCustomer': False}
    assert atualizada['status'] == 'pago'
    assert db.dados('agendamentos', 'ag-2')['status_pagamento'] == 'pago'

    with pytest.raises(ValueError, match='já foi marcada como paga'):
        crud.registrar_recebimento_manual(db, fatura['id'], 'sec-1')


def test_emitir_nfe(dados_cobranca, chamadas_asaas):
    db = dados_cobranca
    db.inserir('faturas', 'fatura-paga-123', {
        'status': 'pago', 'ativo': True, 'id_asaas': 'pay_1', 'valor_total': 300.0,
        'descricao': '2 sessões', 'empresa_id': 'emp-1', 'link_nfe': None,
    })

    resultado = crud.emitir_nfe(db, 'fatura-paga-123', 'admin-1')

    assert resultado == {'invoiceId': 'inv_1', 'link_nfe': 'https://asaas/nfe.pdf'}
    nota = chamadas_asaas[0][2]
    assert nota['municipalServiceCode'] == '0701'
    assert nota['externalReference'] == 'RK-fatura-p'
    assert nota['taxes'] == {'retainIss': False, 'iss': 5.0}
    assert db.dados('faturas', 'fatura-paga-123')['status_nfe'] == 'Emitida com sucesso - aguardando link'


def test_emitir_nfe_com_erro_do_asaas(db, monkeypatch, mock_http):
    db.inserir('pessoa_empresas', 'emp-1', {'api_token_externo': '$aact_chave', 'ativo': True})
    db.inserir('faturas', 'fat-1', {
        'status': 'pago', 'ativo': True, 'id_asaas': 'pay_1', 'valor_total': 100.0, 'empresa_id': 'emp-1',
    })

    def handler(request):
        return httpx.Response(400, json={"errors": [{"description": "Cliente sem endereço"}]})

    monkeypatch.setattr(asaas, "get_asaas_client",
                        lambda api_key: asaas.AsaasClient(api_key, http_client=mock_http(handler)))

    with pytest.raises(ValueError, match='Cliente sem endereço'):
        crud.emitir_nfe(db, 'fat-1', 'admin-1')

    fatura = db.dados('faturas', 'fat-1')
    assert fatura['link_nfe'] == 'erro'
    assert fatura['status_nfe'] == 'Cliente sem endereço'


def test_metricas(db):
    hoje = faturas._hoje()
    db.inserir('faturas', 'f1', {'ativo': True, 'status': 'pago', 'valor_total': 100.0, 'vencimento': hoje.isoformat()})
    db.inserir('faturas', 'f2', {'ativo': True, 'status': 'pendente', 'valor_total': 50.0,
                                 'vencimento': (hoje + timedelta(days=3)).isoformat()})
    db.inserir('faturas', 'f3', {'ativo': True, 'status': 'atrasado', 'valor_total': 25.0,
                                 'vencimento': (hoje - timedelta(days=3)).isoformat()})
    db.inserir('faturas', 'f4', {'ativo': False, 'status': 'pendente', 'valor_total': 999.0})

    assert crud.calcular_metricas_faturas(db) == {
        'total_faturas': 3,
        'valor_total': 175.0,
        'valor_pendente': 50.0,
        'valor_pago': 100.0,
        'valor_atrasado': 25.0,
        'faturas_vencendo': 1,
    }


def test_rota_de_metricas_exige_equipe(client_como, db):
    resposta = client_como('profissional', 'prof-1').get('/faturas/metricas')
    assert resposta.status_code == 403


def test_rota_processar_pagamento_devolve_400(client, dados_cobranca, chamadas_asaas):
    resposta = client.post('/faturas/processar-pagamento', json={'consulta_ids': ['nao-existe']})
    assert resposta.status_code == 400
    assert resposta.json()['detail'] == 'Consulta não encontrada: nao-existe'


@pytest.fixture
def fatura_aberta(dados_cobranca, chamadas_asaas):
    db = dados_cobranca
    db.inserir('agendamentos', 'ag-3', {
        'data_hora': '2025-02-15T13:00:00Z', 'paciente_id': 'pac-1', 'profissional_id': 'prof-1',
        'responsavel_cobranca_id': 'resp-1', 'empresa_fatura_id': 'emp-1',
        'servico_nome': 'Sessão', 'valor_servico': 120.0, 'status_consulta': 'finalizado',
        'possui_evolucao': 'sim', 'status_pagamento': 'pendente', 'ativo': True,
    })
    fatura = crud.processar_pagamento(db, ['ag-1', 'ag-2'], 'admin-1')['fatura']
    chamadas_asaas.clear()
    return fatura


def test_editar_fatura_troca_consultas_e_atualiza_asaas(dados_cobranca, chamadas_asaas, fatura_aberta):
    db = dados_cobranca
    edicao = schemas.FaturaEdicao(agendamentos_adicionar=['ag-3'], agendamentos_remover=['ag-2'])

    editada = crud.editar_fatura(db, fatura_aberta['id'], edicao, 'admin-1')

    assert editada['valor_total'] == 270.0
    metodo, caminho, corpo, _ = chamadas_asaas[0]
    assert (metodo, caminho) == ('PUT', '/v3/payments/pay_456')
    assert corpo['value'] == 270.0
    assert corpo['billingType'] == 'PIX'
    assert db.dados('agendamentos', 'ag-3')['fatura_id'] == fatura_aberta['id']
    assert db.dados('agendamentos', 'ag-2')['fatura_id'] is None
    assert db.dados('agendamentos', 'ag-2')['status_pagamento'] == 'pendente'


@pytest.mark.parametrize("adicionar, remover, erro", [
    (['ag-1'], [], 'já está vinculada a uma fatura'),
    (['nao-existe'], [], 'Consulta não encontrada: nao-existe'),
    ([], ['ag-3'], 'não pertence a esta fatura'),
    ([], ['ag-1', 'ag-2'], 'ao menos uma consulta'),
])
def test_editar_fatura_valida_antes_do_asaas(dados_cobranca, chamadas_asaas, fatura_aberta, adicionar, remover, erro):
    db = dados_cobranca
    edicao = schemas.FaturaEdicao(agendamentos_adicionar=adicionar, agendamentos_remover=remover)

    with pytest.raises(ValueError, match=erro):
        crud.editar_fatura(db, fatura_aberta['id'], edicao, 'admin-1')

    assert chamadas_asaas == []
    assert db.dados('faturas', fatura_aberta['id'])['valor_total'] == 300.0


def test_editar_fatura_ja_vinculada_a_outra(dados_cobranca, chamadas_asaas, fatura_aberta):
    db = dados_cobranca
    db.collection('agendamentos').document('ag-3').update({'fatura_id': 'outra-fatura'})

    with pytest.raises(ValueError, match='já está vinculada'):
        crud.editar_fatura(db, fatura_aberta['id'], schemas.FaturaEdicao(agendamentos_adicionar=['ag-3']), 'admin-1')
    assert chamadas_asaas == []


def test_rota_editar_fatura(client, dados_cobranca, chamadas_asaas, fatura_aberta):
    resposta = client.patch(f"/faturas/{fatura_aberta['id']}", json={'agendamentos_adicionar': ['ag-1']})
    assert resposta.status_code == 400


def test_emitir_nfe_com_falha_inesperada_marca_erro(db, chamadas_asaas, monkeypatch):
    db.inserir('pessoa_empresas', 'emp-1', {'api_token_externo': '$aact_chave', 'ativo': True})
    db.inserir('faturas', 'fat-1', {
        'status': 'pago', 'ativo': True, 'id_asaas': 'pay_1', 'valor_total': 100.0, 'empresa_id': 'emp-1',
    })

    def falhar(self, invoice_id):
        raise RuntimeError('resposta sem corpo')

    monkeypatch.setattr(asaas.AsaasClient, "autorizar_nota_fiscal", falhar)

    with pytest.raises(RuntimeError):
        crud.emitir_nfe(db, 'fat-1', 'admin-1')

    fatura = db.dados('faturas', 'fat-1')
    assert fatura['link_nfe'] == 'erro'
    assert fatura['status_nfe'] == 'Erro inesperado ao emitir NFe'
