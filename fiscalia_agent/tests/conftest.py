"""
Test Configuration — Fiscalía Agent
====================================

Shared fixtures: a small reference-table payload covering every resolution
tier, the KnowledgeBase built from it, a scripted external classifier and an
async HTTP client with the knowledge/engine/session dependencies overridden.
"""
import asyncio
import copy

import pytest

from httpx import AsyncClient, ASGITransport

from app.api.api_router import get_engine, get_knowledge, get_session_store, limiter
from app.models.case_context import CaseContext
from app.services.conversation import ConversationEngine
from app.services.intent_classifier import EMPTY_HINTS, IntentHints
from app.services.knowledge_loader import build_knowledge
from app.services.session_store import InMemorySessionStore
from main import app


SAMPLE_KNOWLEDGE = {
    "distritos": [
        {
            "provincia": "Cajamarca",
            "distrito": "Cajamarca",
            "tiene_fiscalia_violencia": "Sí",
            "fiscalia_penal_mixta_codigo": "PEN-CAJ",
            "fiscalia_familia_codigo": "FAM-CAJ",
            "fiscalia_violencia_codigo": "VIO-CAJ",
            "fiscalia_prevencion_codigo": "PRE-CAJ",
        },
        {
            "provincia": "Cajamarca",
            "distrito": "Baños del Inca",
            "tiene_fiscalia_violencia": "No",
            "fiscalia_penal_mixta_codigo": "PEN-CAJ",
            "fiscalia_familia_codigo": "FAM-CAJ",
            "fiscalia_violencia_codigo": "",
            "fiscalia_prevencion_codigo": "",
        },
        {
            "provincia": "Cajamarca",
            "distrito": "Jesús",
            "tiene_fiscalia_violencia": "",
            "fiscalia_penal_mixta_codigo": "PEN-CAJ",
            "fiscalia_familia_codigo": "",
            "fiscalia_violencia_codigo": "VIO-CAJ",
            "fiscalia_prevencion_codigo": "",
        },
        {
            "provincia": "Cajamarca",
            "distrito": "La Encañada",
            "tiene_fiscalia_violencia": "No",
            "fiscalia_penal_mixta_codigo": "PEN-CAJ",
            "fiscalia_familia_codigo": "FAM-CAJ",
        },
        {
            "provincia": "Hualgayoc",
            "distrito": "Bambamarca",
            "tiene_fiscalia_violencia": "No",
            "fiscalia_penal_mixta_codigo": "MIX-BAM",
            "fiscalia_familia_codigo": "",
        },
        {
            "provincia": "Bolívar",
            "distrito": "Bambamarca",
            "tiene_fiscalia_violencia": "No",
            "fiscalia_penal_mixta_codigo": "MIX-BOL",
        },
        {
            "provincia": "Celendín",
            "distrito": "Celendín",
            "tiene_fiscalia_violencia": "No",
            "fiscalia_penal_mixta_codigo": "MIX-CEL",
        },
    ],
    "fiscalias": [
        {"codigo_fiscalia": "PEN-CAJ", "nombre_fiscalia": "Fiscalía Provincial Penal de Cajamarca",
         "tipo": "Penal", "direccion": "Jr. Principal 100", "telefono": "076-000000",
         "horario": "Lunes a viernes 8:00 a 16:45"},
        {"codigo_fiscalia": "PEN-DF", "nombre_fiscalia": "Fiscalía Penal Corporativa del Distrito Fiscal",
         "tipo": "Penal"},
        {"codigo_fiscalia": "FAM-CAJ", "nombre_fiscalia": "Fiscalía Provincial de Familia de Cajamarca",
         "tipo": "Familia"},
        {"codigo_fiscalia": "FAM-RULE", "nombre_fiscalia": "Fiscalía Civil de Cajamarca",
         "tipo": "Civil"},
        {"codigo_fiscalia": "VIO-CAJ", "nombre_fiscalia": "Fiscalía de Violencia de Cajamarca",
         "tipo": "Violencia"},
        {"codigo_fiscalia": "VIO-ESP", "nombre_fiscalia": "Fiscalía Especializada en Violencia contra la Mujer",
         "tipo": "Violencia"},
        {"codigo_fiscalia": "PRE-CAJ", "nombre_fiscalia": "Fiscalía de Prevención del Delito de Cajamarca",
         "tipo": "Prevención"},
        {"codigo_fiscalia": "MIX-BAM", "nombre_fiscalia": "Fiscalía Provincial Mixta de Bambamarca",
         "tipo": "Mixta"},
        {"codigo_fiscalia": "MIX-BOL", "nombre_fiscalia": "Fiscalía Provincial Mixta de Bolívar",
         "tipo": "Mixta"},
        {"codigo_fiscalia": "AMB-CAJ", "nombre_fiscalia": "Fiscalía Especializada en Materia Ambiental",
         "tipo": "Ambiental"},
    ],
    "competencias": [
        {"categoria": "Penal", "especifico": "Hurto",
         "descripcion": "Apoderarse de un bien mueble ajeno sin violencia, sustrayendo celular o billetera.",
         "requiere_vinculo_familiar": "No"},
        {"categoria": "Penal", "especifico": "Robo",
         "descripcion": "Apoderarse de un bien ajeno usando violencia o amenaza contra la víctima.",
         "requiere_vinculo_familiar": "No"},
        {"categoria": "Penal", "especifico": "Robo agravado",
         "descripcion": "Robo cometido a mano armada, de noche o por dos o más personas.",
         "requiere_vinculo_familiar": "No"},
        {"categoria": "Penal", "especifico": "Lesiones",
         "descripcion": "Causar daño en el cuerpo o la salud: golpes, heridas, fracturas.",
         "requiere_vinculo_familiar": "Depende",
         "categoria_si_familiar": "Violencia Familiar"},
        {"categoria": "Violencia Familiar", "especifico": "Agresiones contra integrantes del grupo familiar",
         "descripcion": "La pareja o un familiar agrede física o psicológicamente a la víctima.",
         "requiere_vinculo_familiar": "Sí"},
        {"categoria": "Familia", "especifico": "Tenencia",
         "descripcion": "Solicitar la tenencia o custodia de los hijos menores de edad.",
         "requiere_vinculo_familiar": "No"},
        {"categoria": "Ambiental", "especifico": "Contaminación ambiental",
         "descripcion": "Se contamina el agua de rios o canales, el suelo o el aire por mineria ilegal, "
                        "relaves o quema de basura.",
         "requiere_vinculo_familiar": "No"},
        {"categoria": "Prevención del Delito", "especifico": "Riesgo inminente de delito",
         "descripcion": "Peligro de que se cometa un delito y se requiere intervención preventiva.",
         "requiere_vinculo_familiar": "No"},
        {"categoria": "Corrupción de Funcionarios", "especifico": "Cohecho",
         "descripcion": "Un funcionario público solicita o recibe dinero o ventajas indebidas.",
         "requiere_vinculo_familiar": "No"},
    ],
    "reglasCompetencia": [
        {"materia": "Penal", "alcance": "distrito_fiscal", "distrito": "",
         "fiscalia_destino_codigo": "PEN-DF"},
        {"materia": "Familia", "alcance": "distrito", "distrito": "Cajamarca",
         "fiscalia_destino_codigo": "FAM-RULE",
         "observacion_opcional": "Conflicts with the district's own family office"},
        {"materia": "Violencia Familiar", "alcance": "distrito", "distrito": "Cajamarca",
         "fiscalia_destino_codigo": "VIO-ESP"},
        {"materia": "Ambiental", "alcance": "distrito", "distrito": "Bambamarca (Bolívar)",
         "fiscalia_destino_codigo": "MIX-BOL"},
        {"materia": "Ambiental", "alcance": "distrito_fiscal", "distrito": "",
         "fiscalia_destino_codigo": "AMB-CAJ"},
        {"materia": "Ambiental", "alcance": "distrito_fiscal", "distrito": "",
         "fiscalia_destino_codigo": "PEN-CAJ"},
        {"materia": "Corrupción de Funcionarios", "alcance": "distrito_fiscal", "distrito": "",
         "fiscalia_destino_codigo": "NO-EXISTE"},
    ],
    "aliasDistritos": [
        {"alias": "Los Baños", "distrito_destino": "Baños del Inca"},
        {"alias": "Baños", "distrito_destino": "Los Baños"},
    ],
}


class FakeClassifier:
    """Scripted stand-in for classify_intent that records its calls."""

    def __init__(self, hints: IntentHints = EMPTY_HINTS, exc: Exception = None, delay: float = 0.0):
        self.hints = hints
        self.exc = exc
        self.delay = delay
        self.calls = []

    async def __call__(self, text, hints=None, *, categories=()):
        self.calls.append({"text": text, "hints": hints, "categories": list(categories)})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return self.hints


@pytest.fixture
def knowledge_data():
    """Deep copy of the sample payload (safe to mutate per test)."""
    return copy.deepcopy(SAMPLE_KNOWLEDGE)


@pytest.fixture
def kb():
    return build_knowledge(copy.deepcopy(SAMPLE_KNOWLEDGE))


@pytest.fixture
def district(kb):
    """Look up a district record by (district, province) names."""
    def _find(name, province=None):
        for d in kb.districts:
            if d.district == name and (province is None or d.province == province):
                return d
        raise LookupError(name)
    return _find


@pytest.fixture
def fake_classifier():
    return FakeClassifier()


@pytest.fixture
def engine(kb, fake_classifier):
    return ConversationEngine(kb, classifier=fake_classifier)


@pytest.fixture
def context():
    return CaseContext()


@pytest.fixture
def sessions():
    return InMemorySessionStore(ttl_minutes=60)


@pytest.fixture
async def client(kb, fake_classifier, sessions):
    """Async HTTP client with knowledge, engine and session store overridden"""
    app.dependency_overrides[get_knowledge] = lambda: kb
    app.dependency_overrides[get_engine] = lambda: ConversationEngine(kb, classifier=fake_classifier)
    app.dependency_overrides[get_session_store] = lambda: sessions
    limiter.reset()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_classifier():
    """Factory for scripted classifiers: make_classifier(hints=..., exc=..., delay=...)."""
    return FakeClassifier
