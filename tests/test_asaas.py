import json

import httpx
import pytest

from services import asaas
from services.asaas import AsaasClient, AsaasError


@pytest.fixture
def api_asaas(monkeypatch, mock_http):
    """ASAAS em memória; respostas por (método, caminho)."""
    estado = {'chamadas': [], 'respostas': {}}

    def handler(request: httpx.Request):
        estado['chamadas'].append(request)
        chave = (request.method, request.url.path)
        status, corpo = estado['respostas'].get(chave, (200, {'id': 'obj-1'}))
        if isinstance(corpo, Exception):
            raise corpo
        return httpx.Response(status, json=corpo)

    def criar(api_key):
        return AsaasClient(api_key, base_url='https://asaas.test/v3', http_client=mock_http(handler))

    monkeypatch.setattr(asaas, "get_asaas_client", criar)
    estado['cliente'] = criar
    return estado


def test_headers_e_limpeza_do_cliente(api_asaas):
    cliente = api_asaas['cliente'](' chave-asaas ')

    cliente.criar_cliente({'name': 'Maria', 'cpfCnpj': '529.982.247-25', 'mobilePhone': '(11) 99999-8888',
                           'email': '', 'postalCode': None})

    request = api_asaas['chamadas'][0]
    assert request.url.path == '/v3/customers'
    assert request.headers['access_token'] == 'chave-asaas'
    assert request.headers['User-Agent'] == 'RespiraKids/1.0'
    assert json.loads(request.content) == {'name': 'Maria', 'cpfCnpj': '52998224725', 'mobilePhone': '11999998888'}


def test_chave_vazia():
    with pytest.raises(AsaasError, match='API key do ASAAS não configurada'):
        AsaasClient('  ')


def test_erro_da_api_usa_a_descricao(api_asaas):
    api_asaas['respostas'][('POST', '/v3/payments')] = (400, {'errors': [{'description': 'Cliente inexistente'}]})
    cliente = api_asaas['cliente']('chave')

    with pytest.raises(AsaasError) as erro:
        cliente.criar_pagamento({'customer': 'cus_1', 'value': 100, 'dueDate': '2025-03-10'})

    assert erro.value.message == 'Cliente inexistente'
    assert erro.value.status_code == 400


def test_erro_sem_descricao_e_timeout(api_asaas):
    api_asaas['respostas'][('DELETE', '/v3/payments/pay_1')] = (500, {})
    api_asaas['respostas'][('GET', '/v3/customers')] = (200, httpx.ReadTimeout('lento'))
    cliente = api_asaas['cliente']('chave')

    with pytest.raises(AsaasError, match='Erro 500 ao cancelar cobrança no Asaas'):
        cliente.cancelar_pagamento('pay_1')
    with pytest.raises(AsaasError, match='Timeout ao buscar cliente - tente novamente'):
        cliente.buscar_cliente_por_cpf('52998224725')


@pytest.mark.parametrize("dados, erro", [
    ({'customer': 'cus_1', 'value': 100}, 'Dados obrigatórios não informados'),
    ({'customer': 'cus_1', 'value': -5, 'dueDate': '2025-03-10'}, 'Valor deve ser maior que zero'),
    ({'customer': 'cus_1', 'value': 100, 'dueDate': '10/03/2025'}, 'formato YYYY-MM-DD'),
])
def test_validacao_do_pagamento(api_asaas, dados, erro):
    with pytest.raises(AsaasError, match=erro):
        api_asaas['cliente']('chave').criar_pagamento(dados)
    assert api_asaas['chamadas'] == []


def test_pagamento_pix(api_asaas):
    api_asaas['cliente']('chave').criar_pagamento({'customer': 'cus_1', 'value': 180, 'dueDate': '2025-03-10',
                                                  'externalReference': 'fat-1'})
    assert json.loads(api_asaas['chamadas'][0].content) == {
        'customer': 'cus_1',
        'billingType': 'PIX',
        'value': 180,
        'dueDate': '2025-03-10',
        'description': 'Cobrança Respira Kids',
        'externalReference': 'fat-1',
    }


def test_busca_de_cliente(api_asaas):
    api_asaas['respostas'][('GET', '/v3/customers')] = (200, {'data': []})
    assert api_asaas['cliente']('chave').buscar_cliente_por_cpf('529.982.247-25') == \
        {'found': False, 'customer': None}
    assert api_asaas['chamadas'][0].url.params['cpfCnpj'] == '52998224725'


@pytest.fixture
def empresa(db):
    db.inserir('pessoa_empresas', 'emp-1', {'razao_social': 'Respira Kids LTDA', 'api_token_externo': 'chave-emp',
                                            'ativo': True})
    db.inserir('pessoa_empresas', 'emp-2', {'razao_social': 'Sem Chave', 'ativo': True})
    return db


def test_rota_cria_cliente(client, empresa, api_asaas):
    resposta = client.post('/asaas/customers', json={
        'empresa_id': 'emp-1', 'customer': {'name': 'Maria', 'cpfCnpj': '52998224725'},
    })

    assert resposta.json() == {'success': True, 'customer': {'id': 'obj-1'}}
    assert api_asaas['chamadas'][0].headers['access_token'] == 'chave-emp'


def test_rota_com_dados_faltando_ou_sem_chave(client, empresa, api_asaas):
    faltando = client.post('/asaas/customers', json={'empresa_id': 'emp-1', 'customer': {'name': 'Maria'}})
    assert faltando.status_code == 400
    assert faltando.json() == {'success': False, 'error': 'Dados obrigatórios não informados'}

    sem_chave = client.post('/asaas/customers/search', json={'empresa_id': 'emp-2', 'cpf_cnpj': '52998224725'})
    assert sem_chave.status_code == 400
    assert sem_chave.json()['error'] == 'API key da empresa não configurada'


def test_erro_do_asaas_volta_200(client, empresa, api_asaas):
    api_asaas['respostas'][('POST', '/v3/payments/pay_1/receiveInCash')] = \
        (400, {'errors': [{'description': 'Cobrança já recebida'}]})

    resposta = client.post('/asaas/payments/receive-in-cash', json={
        'empresa_id': 'emp-1', 'payment_id': 'pay_1', 'valor': 180, 'data_pagamento': '2025-03-10',
    })

    assert resposta.status_code == 200
    assert resposta.json() == {'success': False, 'error': 'Cobrança já recebida'}


def test_desabilitar_notificacoes(client, empresa, api_asaas):
    resposta = client.post('/asaas/customers/disable-notifications', json={'empresa_id': 'emp-1',
                                                                         'customer_id': 'cus_1'})

    assert resposta.json()['message'] == 'Notificações desabilitadas com sucesso'
    corpo = json.loads(api_asaas['chamadas'][0].content)
    assert corpo['customer'] == 'cus_1'
    assert corpo['notifications'][0]['enabled'] is False


def test_validar_token(client, api_asaas):
    assert client.post('/asaas/validate-token', json={'token': 'curto'}).json() == \
        {'isValid': False, 'message': 'Token deve ter pelo menos 10 caracteres'}
    assert client.post('/asaas/validate-token', json={'token': 'chave-longa-ok'}).json()['isValid'] is True

    api_asaas['respostas'][('GET', '/v3/myAccount')] = (401, {})
    assert client.post('/asaas/validate-token', json={'token': 'chave-longa-ok'}).json() == \
        {'isValid': False, 'message': 'Token inválido ou expirado'}


def test_criar_empresa(client, api_asaas):
    resposta = client.post('/asaas/companies', json={'token': 'chave-longa-ok', 'razao_social': 'Clínica',
                                                     'cnpj': '12.345.678/0001-90'})

    assert resposta.json() == {'success': True, 'message': 'Empresa criada com sucesso no Asaas', 'asaasId': 'obj-1'}
    assert json.loads(api_asaas['chamadas'][0].content)['cpfCnpj'] == '12345678000190'
    assert client.post('/asaas/companies', json={'token': 'x', 'razao_social': 'C', 'cnpj': '1'}).status_code == 400


def test_operacoes_de_admin(client_como, empresa, api_asaas):
    resposta = client_como('secretaria', 'sec-1').post('/asaas/payments/cancel', json={'empresa_id': 'emp-1',
                                                                                       'payment_id': 'pay_1'})
    assert resposta.status_code == 403


@pytest.mark.parametrize("dados, erro", [
    ({'customer': 'cus_1', 'value': 'abc', 'dueDate': '2025-03-10'}, 'Valor inválido'),
    ({'customer': 'cus_1', 'value': True, 'dueDate': '2025-03-10'}, 'Valor inválido'),
    ({'customer': 'cus_1', 'value': 'nan', 'dueDate': '2025-03-10'}, 'Valor inválido'),
    ({'customer': 'cus_1', 'value': 100, 'dueDate': 20250310}, 'formato YYYY-MM-DD'),
])
def test_pagamento_com_tipos_errados(api_asaas, dados, erro):
    with pytest.raises(AsaasError, match=erro):
        api_asaas['cliente']('chave').criar_pagamento(dados)
    assert api_asaas['chamadas'] == []


def test_valor_em_texto_numerico_vira_float(api_asaas):
    cliente = api_asaas['cliente']('chave')

    cliente.criar_pagamento({'customer': 'cus_1', 'value': '150', 'dueDate': '2025-03-10'})
    cliente.atualizar_pagamento('pay_1', {'value': '99.90'})

    assert json.loads(api_asaas['chamadas'][0].content)['value'] == 150.0
    assert json.loads(api_asaas['chamadas'][1].content) == {'value': 99.9}
    with pytest.raises(AsaasError, match='Valor inválido'):
        cliente.atualizar_pagamento('pay_1', {'value': [1]})
    with pytest.raises(AsaasError, match='Valor inválido'):
        cliente.receber_em_dinheiro('pay_1', 'cem', '2025-03-10')


def test_rota_com_valor_invalido_responde_sem_sucesso(client, empresa, api_asaas):
    resposta = client.post('/asaas/payments', json={
        'empresa_id': 'emp-1', 'payment': {'customer': 'c', 'value': 'abc', 'dueDate': '2025-03-10'},
    })

    assert resposta.status_code == 200
    assert resposta.json() == {'success': False, 'error': 'Valor inválido'}

    numerico = client.post('/asaas/payments', json={
        'empresa_id': 'emp-1', 'payment': {'customer': 'c', 'value': '150', 'dueDate': '2025-03-10'},
    })
    assert numerico.json() == {'success': True, 'payment': {'id': 'obj-1'}}


def test_cliente_fecha_a_conexao(api_asaas):
    with api_asaas['cliente']('chave') as cliente:
        cliente.cancelar_pagamento('pay_1')
        assert not cliente._http.is_closed
    assert cliente._http.is_closed


def test_rotas_fecham_o_cliente(client, empresa, monkeypatch, mock_http):
    criados = []

    def criar(api_key):
        cliente = AsaasClient(api_key, base_url='https://asaas.test/v3',
                              http_client=mock_http(lambda request: httpx.Response(200, json={'id': 'obj-1'})))
        criados.append(cliente)
        return cliente

    monkeypatch.setattr(asaas, "get_asaas_client", criar)

    client.post('/asaas/customers/search', json={'empresa_id': 'emp-1', 'cpf_cnpj': '52998224725'})
    client.post('/asaas/validate-token', json={'token': 'chave-valida-123'})

    assert len(criados) == 2
    assert all(c._http.is_closed for c in criados)
