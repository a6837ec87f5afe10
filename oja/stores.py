"""UK store name normalization and store metadata.

Receipts print store names in many forms ("TESCO EXPRESS", "Sainsbury's
Local", "WM MORRISON SUPERMARKETS PLC"). Prices and comparisons are keyed by
a canonical store id, so every ingest path goes through
:func:`normalize_store_name` first.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from .errors import NotFoundError

UNKNOWN_STORE_ID = "unknown"

STORE_TYPES = (
    "supermarket",
    "discounter",
    "convenience",
    "premium",
    "frozen",
    "wholesale",
    "specialty",
)


@dataclass(frozen=True)
class StoreInfo:
    id: str
    display_name: str
    color: str  # brand hex color
    type: str
    market_share: float  # approximate UK share, percent
    aliases: tuple[str, ...] = ()
    cuisines: tuple[str, ...] = field(default=())


# Ordered by market share, largest first.
_STORES: tuple[StoreInfo, ...] = (
    StoreInfo("tesco", "Tesco", "#00539F", "supermarket", 27, (
        "tesco", "tesco express", "tesco extra", "tesco metro",
        "tesco superstore", "tesco stores", "tesco stores ltd", "tesco plc",
        "tesco home plus", "tesco petrol",
    )),
    StoreInfo("sainsburys", "Sainsbury's", "#F06C00", "supermarket", 15, (
        "sainsbury's", "sainsburys", "sainsbury", "sainsbury's local",
        "sainsburys local", "sainsbury local", "j sainsbury", "j sainsbury plc",
        "sainsbury's supermarket", "sainsburys supermarket",
    )),
    StoreInfo("asda", "Asda", "#7AB51D", "supermarket", 14, (
        "asda", "asda stores", "asda supermarket", "asda superstore",
        "asda express", "asda living", "asda stores ltd", "asda supercentre",
    )),
    StoreInfo("aldi", "Aldi", "#0056A4", "discounter", 10, (
        "aldi", "aldi stores", "aldi uk", "aldi stores ltd", "aldi sud",
        "aldi south",
    )),
    StoreInfo("morrisons", "Morrisons", "#007A3C", "supermarket", 9, (
        "morrisons", "morrison's", "wm morrisons", "wm morrison",
        "morrisons supermarket", "morrisons store", "morrisons daily",
        "morrisons supermarkets", "wm morrison supermarkets",
    )),
    StoreInfo("lidl", "Lidl", "#0050AA", "discounter", 7, (
        "lidl", "lidl uk", "lidl stores", "lidl gb", "lidl great britain",
        "lidl ltd",
    )),
    StoreInfo("coop", "Co-op", "#00B2A9", "convenience", 5, (
        "co-op", "coop", "co op", "the co-operative", "the cooperative",
        "cooperative food", "co-op food", "co-operative food", "coop food",
        "the co-op", "midcounties co-op", "central co-op", "southern co-op",
    )),
    StoreInfo("waitrose", "Waitrose", "#006C4C", "premium", 5, (
        "waitrose", "waitrose & partners", "waitrose and partners",
        "little waitrose", "waitrose food", "john lewis waitrose",
    )),
    StoreInfo("marks", "M&S Food", "#000000", "premium", 3, (
        "m&s", "marks & spencer", "marks and spencer", "m&s food", "m & s",
        "marks", "marks spencer", "m&s foodhall", "m&s simply food",
        "marks & spencer food", "marks and spencer food", "m and s",
    )),
    StoreInfo("iceland", "Iceland", "#E31837", "frozen", 2, (
        "iceland", "iceland foods", "iceland stores", "the food warehouse",
        "food warehouse", "iceland food warehouse",
    )),
    StoreInfo("nisa", "Nisa Local", "#ED1C24", "convenience", 1, (
        "nisa", "nisa local", "nisa extra", "nisa retail", "nisa today's",
    )),
    StoreInfo("spar", "Spar", "#DA291C", "convenience", 1, (
        "spar", "spar uk", "spar express", "spar store", "spar stores",
        "eurospar",
    )),
    StoreInfo("londis", "Londis", "#E31837", "convenience", 0.5, (
        "londis", "londis store", "londis stores", "londis retail",
    )),
    StoreInfo("costcutter", "Costcutter", "#EE2A24", "convenience", 0.5, (
        "costcutter", "costcutter supermarkets", "costcutter store",
        "cost cutter",
    )),
    StoreInfo("premier", "Premier", "#6B2C91", "convenience", 0.5, (
        "premier", "premier stores", "premier store", "premier convenience",
        "premier express",
    )),
    StoreInfo("onestop", "One Stop", "#E4002B", "convenience", 0.5, (
        "one stop", "onestop", "one-stop", "one stop stores", "one stop shop",
    )),
    StoreInfo("budgens", "Budgens", "#78BE20", "convenience", 0.5, (
        "budgens", "budgen", "budgens store", "budgens local",
    )),
    StoreInfo("farmfoods", "Farmfoods", "#009639", "frozen", 0.5, (
        "farmfoods", "farm foods", "farmfoods ltd", "farmfoods store",
        "farmfoods frozen",
    )),
    StoreInfo("costco", "Costco", "#005DAA", "wholesale", 0.5, (
        "costco", "costco wholesale", "costco uk", "costco warehouse",
    )),
    StoreInfo("booker", "Booker", "#00529B", "wholesale", 0.5, (
        "booker", "booker wholesale", "booker cash & carry",
        "booker cash and carry", "makro", "booker makro",
    )),
    StoreInfo("wingyip", "Wing Yip", "#CC0000", "specialty", 0.1, (
        "wing yip", "wing yip superstore", "wing yip oriental",
    ), ("chinese", "japanese", "korean", "thai", "vietnamese")),
    StoreInfo("loonfung", "Loon Fung", "#D4262C", "specialty", 0.1, (
        "loon fung", "loon fung supermarket", "loon fung chinese supermarket",
    ), ("chinese", "japanese", "korean", "thai", "vietnamese")),
    StoreInfo("seewoo", "SeeWoo", "#E31937", "specialty", 0.1, (
        "seewoo", "see woo", "seewoo supermarket", "see woo oriental",
    ), ("chinese", "japanese", "korean", "thai", "vietnamese")),
    StoreInfo("african_grocery", "African Store", "#009639", "specialty", 0.1, (
        "african grocery", "african food store", "african store",
        "african supermarket", "afro caribbean store", "nigerian grocery",
        "nigerian store", "african market",
    ), ("nigerian", "ethiopian", "caribbean")),
    StoreInfo("southasian_grocery", "Indian Store", "#FF9933", "specialty", 0.1, (
        "south asian grocery", "indian grocery", "indian store",
        "indian supermarket", "pakistani grocery", "desi store",
        "bangladeshi grocery", "sri lankan grocery",
    ), ("indian", "pakistani")),
    StoreInfo("middleeastern_grocery", "Middle Eastern Store", "#006847", "specialty", 0.1, (
        "middle eastern grocery", "middle eastern store", "arabic grocery",
        "persian grocery", "turkish grocery", "lebanese grocery",
        "halal store", "halal supermarket",
    ), ("middle-eastern",)),
)

# Removed from the end of a name before retrying the alias lookup
_STRIP_SUFFIXES: list[str] = [
    "express", "extra", "metro", "local", "superstore", "supermarket",
    "stores", "store", "ltd", "plc", "uk", "gb", "oriental", "grocery",
    "wholesale",
]

_PUNCT_RE = re.compile(r"[.,;:!?'\"]")
_WS_RE = re.compile(r"\s+")


def _clean(raw: str) -> str:
    cleaned = _PUNCT_RE.sub("", raw.lower())
    return _WS_RE.sub(" ", cleaned).strip()


_ALIAS_TO_ID: dict[str, str] = {}
_ID_TO_INFO: dict[str, StoreInfo] = {}
for _store in _STORES:
    _ID_TO_INFO[_store.id] = _store
    for _alias in _store.aliases:
        _ALIAS_TO_ID[_clean(_alias)] = _store.id


def normalize_store_name(raw: str) -> str | None:
    """Map a receipt store name (or name plus address) to a store id.

    Returns None when the store is not recognised.
    """
    if not raw or not isinstance(raw, str):
        return None

    cleaned = _clean(raw)
    if not cleaned:
        return None

    if cleaned in _ALIAS_TO_ID:
        return _ALIAS_TO_ID[cleaned]

    stripped = cleaned
    for suffix in _STRIP_SUFFIXES:
        stripped = re.sub(rf"\s+{suffix}$", "", stripped).strip()
    if stripped != cleaned and stripped in _ALIAS_TO_ID:
        return _ALIAS_TO_ID[stripped]

    # Bare ids inside longer strings, e.g. "tesco 1234 high st"
    for store in _STORES:
        if store.id in cleaned.split() or store.id in stripped.split():
            return store.id

    # Whole alias at the start only, so "spar" does not match "sparkling wines"
    for store in _STORES:
        for alias in store.aliases:
            alias = _clean(alias)
            if _starts_with_word(cleaned, alias) or _starts_with_word(stripped, alias):
                return store.id

    return None


def _starts_with_word(text: str, prefix: str) -> bool:
    return text == prefix or text.startswith(prefix + " ")


def get_store_info(store_id: str) -> StoreInfo:
    try:
        return _ID_TO_INFO[store_id]
    except KeyError:
        raise NotFoundError(f"Unknown store id: {store_id}") from None


def get_store_info_safe(store_id: str) -> StoreInfo | None:
    return _ID_TO_INFO.get(store_id)


def all_stores() -> list[StoreInfo]:
    """All known stores, largest market share first."""
    return list(_STORES)


def stores_by_type(store_type: str) -> list[StoreInfo]:
    return [s for s in _STORES if s.type == store_type]


def is_valid_store_id(store_id: str) -> bool:
    return store_id in _ID_TO_INFO


def store_display_name(store_id: str) -> str:
    info = _ID_TO_INFO.get(store_id)
    if info is not None:
        return info.display_name
    return store_id.replace("_", " ").title()
