import pytest

import crud
from crud import produtos


def test_normalizar_e_tokenizar():
    assert produtos.normalizar_texto("  Luva  Nitrílica (Azul)! ") == "luva nitrilica azul"
    assert produtos.tokenizar("Kit de Máscara p/ nebulização") == ["kit", "mascara", "nebulizacao"]


def test_similaridades():
    assert produtos.distancia_levenshtein("gato", "rato") == 1
    assert produtos.similaridade_levenshtein("gato", "rato") == 75
    assert produtos.similaridade_levenshtein("", "") == 100
    assert produtos.similaridade_tokens("luva azul grande", "luva azul") == 67
    assert produtos.similaridade_tokens("de", "luva") == 0


def test_pontuacao():
    produto = {'nome': 'Luva Nitrílica', 'codigo': 'LUVA-NITR'}
    assert produtos.pontuar_produto('luva nitrilica', produto) == 100
    assert produtos.pontuar_produto('LUVA NITR', produto) == 100
    assert produtos.pontuar_produto('luva', produto) == 90


@pytest.mark.parametrize("score, tipo", [(100, 'exact'), (95, 'exact'), (80, 'high'), (50, 'medium'), (49, 'low')])
def test_tipo_de_match(score, tipo):
    assert produtos.tipo_de_match(score) == tipo


def test_gerar_codigo_produto():
    assert produtos.gerar_codigo_produto('Luva Nitrílica Azul Tamanho M') == 'LUVA-NITR-AZUL'
    assert produtos.gerar_codigo_produto('a b') == 'PROD'


@pytest.fixture
def catalogo(db):
    db.inserir('produtos_servicos', 'p1', {'nome': 'Luva Nitrílica Azul', 'codigo': 'LUVA-NITR-AZUL', 'ativo': True})
    db.inserir('produtos_servicos', 'p2', {'nome': 'Máscara de Nebulização', 'codigo': 'MASC-NEBU', 'ativo': True})
    db.inserir('produtos_servicos', 'p3', {'nome': 'Luva Nitrílica Preta', 'codigo': 'LUVA-NITR-PRET', 'ativo': False})
    return db


def test_busca_similares_ignora_inativos_e_ordena(catalogo):
    matches = crud.buscar_produtos_similares(catalogo, 'luva nitrilica')
    assert [m['produto']['id'] for m in matches] == ['p1']
    assert matches[0]['score'] == 90
    assert matches[0]['matchType'] == 'high'

    assert crud.buscar_produtos_similares(catalogo, 'lu') == []


def test_sugestao(catalogo):
    sugestao = crud.sugerir_produto(catalogo, 'Máscara de nebulização', 'cat-1')
    assert sugestao['produto_match']['produto']['id'] == 'p2'
    assert sugestao['sugestao_criar'] is False
    assert sugestao['categoria_sugerida_id'] == 'cat-1'

    sem_match = crud.sugerir_produto(catalogo, 'Seringa descartável')
    assert sem_match['produto_match'] is None
    assert sem_match['sugestao_criar'] is True
    assert sem_match['codigo_sugerido'] == 'SERI-DESC'


def test_criar_produto_rapido_pela_rota(client_como, catalogo):
    client = client_como('secretaria', 'sec-1')

    resposta = client.post('/produtos/rapido', json={'codigo': 'seri-desc', 'nome': 'Seringa descartável'})
    assert resposta.status_code == 201
    assert resposta.json()['codigo'] == 'SERI-DESC'
    assert resposta.json()['criado_por'] == 'sec-1'

    duplicado = client.post('/produtos/rapido', json={'codigo': 'SERI-DESC', 'nome': 'Outra'})
    assert duplicado.status_code == 400
    assert duplicado.json()['detail'] == 'Código já existe'


def test_rota_similares(client, catalogo):
    resposta = client.get('/produtos/similares', params={'descricao': 'mascara nebulizacao', 'limite': 1})
    assert resposta.status_code == 200
    assert resposta.json()[0]['produto']['codigo'] == 'MASC-NEBU'
