import copy
import uuid
from datetime import datetime, timezone

import httpx
import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient
from firebase_admin import firestore
from google.api_core.exceptions import NotFound

import crypto_utils
import schemas
from auth import get_current_user_firebase
from database import get_db


# =================================================================================
# FIRESTORE EM MEMÓRIA
# =================================================================================

def _resolver_sentinelas(dados):
    resolvido = {}
    for chave, valor in dados.items():
        if valor is firestore.SERVER_TIMESTAMP:
            valor = datetime.now(timezone.utc)
        resolvido[chave] = copy.deepcopy(valor)
    return resolvido


def _comparar(valor, op, alvo):
    if op == '==':
        return valor == alvo
    if op == '!=':
        return valor is not None and valor != alvo
    if op == 'in':
        return valor in alvo
    if op == 'not-in':
        return valor is not None and valor not in alvo
    if op == 'array_contains':
        return isinstance(valor, list) and alvo in valor
    if op == 'array_contains_any':
        return isinstance(valor, list) and any(a in valor for a in alvo)
    if valor is None:
        return False
    if op == '<':
        return valor < alvo
    if op == '<=':
        return valor <= alvo
    if op == '>':
        return valor > alvo
    if op == '>=':
        return valor >= alvo
    raise ValueError(f"Operador não suportado: {op}")


class FakeSnapshot:
    def __init__(self, reference, dados):
        self.reference = reference
        self.id = reference.id
        self._dados = dados

    @property
    def exists(self):
        return self._dados is not None

    def to_dict(self):
        return copy.deepcopy(self._dados) if self._dados is not None else None

    def get(self, campo):
        return (self._dados or {}).get(campo)


class FakeDocumentReference:
    def __init__(self, store, colecao, doc_id):
        self._store = store
        self._colecao = colecao
        self.id = doc_id

    def _docs(self):
        return self._store.setdefault(self._colecao, {})

    def get(self):
        return FakeSnapshot(self, copy.deepcopy(self._docs().get(self.id)))

    def set(self, dados, merge=False):
        novos = _resolver_sentinelas(dados)
        if merge and self.id in self._docs():
            self._docs()[self.id].update(novos)
        else:
            self._docs()[self.id] = novos

    def update(self, dados):
        if self.id not in self._docs():
            raise NotFound(f"No document to update: {self._colecao}/{self.id}")
        self._docs()[self.id].update(_resolver_sentinelas(dados))

    def delete(self):
        self._docs().pop(self.id, None)


class FakeQuery:
    def __init__(self, store, colecao, filtros=None, ordens=None, limite=None):
        self._store = store
        self._colecao = colecao
        self._filtros = filtros or []
        self._ordens = ordens or []
        self._limite = limite

    def where(self, campo, op, valor):
        return FakeQuery(self._store, self._colecao, self._filtros + [(campo, op, valor)], self._ordens, self._limite)

    def order_by(self, campo, direction=firestore.Query.ASCENDING):
        return FakeQuery(self._store, self._colecao, self._filtros, self._ordens + [(campo, direction)], self._limite)

    def limit(self, quantidade):
        return FakeQuery(self._store, self._colecao, self._filtros, self._ordens, quantidade)

    def stream(self):
        docs = self._store.get(self._colecao, {})
        encontrados = [
            (doc_id, dados) for doc_id, dados in docs.items()
            if all(_comparar(dados.get(campo), op, valor) for campo, op, valor in self._filtros)
        ]
        for campo, direcao in reversed(self._ordens):
            encontrados = [d for d in encontrados if d[1].get(campo) is not None]
            encontrados.sort(key=lambda d: d[1][campo], reverse=direcao == firestore.Query.DESCENDING)
        if self._limite is not None:
            encontrados = encontrados[:self._limite]
        for doc_id, dados in encontrados:
            ref = FakeDocumentReference(self._store, self._colecao, doc_id)
            yield FakeSnapshot(ref, copy.deepcopy(dados))


class FakeCollection(FakeQuery):
    def document(self, doc_id=None):
        return FakeDocumentReference(self._store, self._colecao, doc_id or uuid.uuid4().hex[:20])


class FakeBatch:
    def __init__(self):
        self._operacoes = []

    def set(self, ref, dados, merge=False):
        self._operacoes.append(lambda: ref.set(dados, merge=merge))

    def update(self, ref, dados):
        self._operacoes.append(lambda: ref.update(dados))

    def delete(self, ref):
        self._operacoes.append(ref.delete)

    def commit(self):
        for operacao in self._operacoes:
            operacao()
        self._operacoes = []


class FakeFirestore:
    def __init__(self):
        self._store = {}

    def collection(self, nome):
        return FakeCollection(self._store, nome)

    def batch(self):
        return FakeBatch()

    # --- atalhos dos testes ---

    def inserir(self, colecao, doc_id, dados):
        self.collection(colecao).document(doc_id).set(dados)
        return doc_id

    def dados(self, colecao, doc_id):
        return copy.deepcopy(self._store.get(colecao, {}).get(doc_id))

    def todos(self, colecao):
        return {doc_id: copy.deepcopy(d) for doc_id, d in self._store.get(colecao, {}).items()}


# =================================================================================
# FIXTURES
# =================================================================================

@pytest.fixture
def db():
    return FakeFirestore()


@pytest.fixture(autouse=True)
def chave_fernet(monkeypatch):
    monkeypatch.setenv("FERNET_KEY", Fernet.generate_key().decode('utf-8'))
    monkeypatch.setattr(crypto_utils, "fernet_instance", None)


@pytest.fixture
def mock_http():
    """Fábrica de httpx.Client que responde pelo handler em vez da rede."""
    def _criar(handler):
        return httpx.Client(transport=httpx.MockTransport(handler))
    return _criar


@pytest.fixture
def client_como(db):
    """Fábrica de TestClient autenticado com o papel informado."""
    from main import app

    def _criar(role='admin', pessoa_id='admin-1'):
        usuario = schemas.UsuarioProfile(
            id=pessoa_id,
            nome=f"Usuário {role}",
            email=f"{role}@respirakids.com.br",
            firebase_uid=f"uid-{pessoa_id}",
            role=role,
        )
        app.dependency_overrides[get_db] = lambda: db
        app.dependency_overrides[get_current_user_firebase] = lambda: usuario
        return TestClient(app)

    yield _criar
    app.dependency_overrides.clear()


@pytest.fixture
def client(client_como):
    return client_como('admin')


@pytest.fixture
def client_publico(db):
    from main import app
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()
