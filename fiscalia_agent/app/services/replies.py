"""
Outbound Replies
=================

Spanish reply text and quick-reply labels for every conversation outcome.
Transport-agnostic: the channel adapter decides how to render quick replies.
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

from app.models.knowledge import District
from app.models.resolution import MatchOutcome

MAX_QUICK_REPLIES = 13  # Messenger limit
QUICK_REPLY_MAX_CHARS = 20

QR_REPORT = "Denuncia"
QR_NEW_CASE = "Nuevo caso"
QR_YES = "Sí"
QR_NO = "No"

WELCOME_MESSAGE = (
    "Hola 👋 Soy el asistente virtual de orientación del Ministerio Público. "
    "¿En qué puedo ayudarte hoy?"
)
ASK_STORY_MESSAGE = "Cuéntame, por favor, ¿qué ocurrió? (puedes describirlo con tus palabras)."
ASK_TEXT_MESSAGE = "¿Podrías escribir tu consulta en texto, por favor?"
ASK_CATEGORY_MESSAGE = (
    "Gracias por contarlo. Para orientarte mejor, ¿podrías darme más detalles "
    "de lo ocurrido o elegir el tipo de caso?"
)
ASK_CATEGORY_AGAIN_MESSAGE = (
    "Aún no logro identificar el tipo de caso. Elige una de las opciones o "
    "descríbelo con otras palabras (por ejemplo: robo, agresión, pensión de alimentos)."
)
ASK_DISTRICT_MESSAGE = (
    "Para orientarte mejor, ¿en qué distrito ocurrieron los hechos? "
    "(Ej.: Cajamarca, Baños del Inca, San Marcos)"
)
DISTRICT_NOT_FOUND_MESSAGE = (
    "No encontré ese distrito. ¿Podrías escribir nuevamente el nombre del "
    "distrito donde ocurrieron los hechos?"
)
ASK_DISAMBIGUATION_MESSAGE = (
    "Encontré más de un distrito con ese nombre. ¿A cuál te refieres? "
    "Responde con el número de la opción:"
)
ASK_LINK_MESSAGE = (
    "Para orientarte correctamente: ¿la persona denunciada es tu familiar, "
    "pareja o expareja? Responde Sí o No."
)
NO_MATCH_MESSAGE = (
    "No encontré una fiscalía específica para tu caso en {district}. "
    "Te recomendamos acudir a la Fiscalía competente de tu zona (Mesa de Partes / "
    "Atención al Usuario) para recibir orientación y presentar tu denuncia."
)
CLOSING_MESSAGE = (
    "Tu consulta anterior ya fue atendida. Si deseas orientación sobre otro "
    "hecho, escribe \"nuevo caso\"."
)
OFFICE_MESSAGE = (
    "Según la información brindada, tu caso correspondería a la materia *{category}*.\n"
    "Distrito indicado: *{district}*.\n\n"
    "📌 *Fiscalía sugerida:* {name}"
)


@dataclass(frozen=True)
class Reply:
    """One outbound message: text plus optional quick-reply labels."""

    text: str
    quick_replies: Tuple[str, ...] = field(default_factory=tuple)


def _quick_replies(labels: Sequence[str]) -> Tuple[str, ...]:
    """Deduplicate, trim to the channel's label length and count limits."""
    out = []
    for label in labels:
        short = label.strip()[:QUICK_REPLY_MAX_CHARS]
        if short and short not in out:
            out.append(short)
    return tuple(out[:MAX_QUICK_REPLIES])


def welcome() -> Reply:
    return Reply(WELCOME_MESSAGE, _quick_replies([QR_REPORT]))


def ask_story() -> Reply:
    return Reply(ASK_STORY_MESSAGE)


def ask_text() -> Reply:
    return Reply(ASK_TEXT_MESSAGE)


def ask_category(categories: Sequence[str], repeat: bool = False) -> Reply:
    text = ASK_CATEGORY_AGAIN_MESSAGE if repeat else ASK_CATEGORY_MESSAGE
    return Reply(text, _quick_replies(categories))


def ask_district(retry: bool = False) -> Reply:
    return Reply(DISTRICT_NOT_FOUND_MESSAGE if retry else ASK_DISTRICT_MESSAGE)


def ask_disambiguation(candidates: Sequence[District]) -> Reply:
    lines = [ASK_DISAMBIGUATION_MESSAGE]
    lines += [f"{i}. {d.label}" for i, d in enumerate(candidates, 1)]
    return Reply("\n".join(lines), _quick_replies([str(i) for i in range(1, len(candidates) + 1)]))


def ask_link() -> Reply:
    return Reply(ASK_LINK_MESSAGE, _quick_replies([QR_YES, QR_NO]))


def office_card(outcome: MatchOutcome, district: District, summary: Optional[str] = None) -> Reply:
    """Resolved-office message (name, address, phone, hours)."""
    office = outcome.office
    parts = []
    if summary:
        parts.append(summary)
    parts.append(OFFICE_MESSAGE.format(
        category=outcome.category,
        district=district.label,
        name=office.name,
    ))
    details = []
    if office.address:
        details.append(f"📍 Dirección: {office.address}")
    if office.phone:
        details.append(f"☎️ Teléfono: {office.phone}")
    if office.hours:
        details.append(f"🕒 Horario: {office.hours}")
    text = "\n\n".join(parts)
    if details:
        text += "\n" + "\n".join(details)
    return Reply(text, _quick_replies([QR_NEW_CASE]))


def no_match(district: Optional[District]) -> Reply:
    place = district.label if district else "tu distrito"
    return Reply(NO_MATCH_MESSAGE.format(district=place), _quick_replies([QR_NEW_CASE]))


def closing() -> Reply:
    return Reply(CLOSING_MESSAGE, _quick_replies([QR_NEW_CASE]))
