"""Normalization functions for legacy catalog CSV ingestion.

Name folding, Japanese/English name classification, event edition parsing
and the script-classification "initial" used for catalog sorting.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Rule 1: normalize_full_width_symbols
# ---------------------------------------------------------------------------

_FULL_WIDTH_SYMBOLS = {
    "／": "/",
    "：": ":",
    "（": "(",
    "）": ")",
    "　": " ",
    "！": "!",
    "？": "?",
    "＆": "&",
    "＝": "=",
    "＋": "+",
    "－": "-",
    "＊": "*",
    "＠": "@",
    "＃": "#",
    "％": "%",
    "＄": "$",
    "￥": "\\",
    "｜": "|",
    "＜": "<",
    "＞": ">",
    "［": "[",
    "］": "]",
    "｛": "{",
    "｝": "}",
    "‘": "'",
    "’": "'",
    "“": '"',
    "”": '"',
    "、": ",",
    "。": ".",
}

_FULL_WIDTH_TABLE = str.maketrans(_FULL_WIDTH_SYMBOLS)


def normalize_full_width_symbols(value: str) -> str:
    """Fold common full-width punctuation to its ASCII form.

    Letters, digits and kana are left alone; only the symbols the legacy
    tool mixed freely with their ASCII twins are folded.
    """
    if not value:
        return value
    return value.translate(_FULL_WIDTH_TABLE)


# ---------------------------------------------------------------------------
# Rule 2: is_english_only / generate_name_info / generate_sort_name
# ---------------------------------------------------------------------------

def is_english_only(value: str | None) -> bool:
    """True when every character is printable ASCII (tab/newline allowed)."""
    if not value:
        return False
    for ch in value:
        if ch in "\t\n\r":
            continue
        if not (0x20 <= ord(ch) <= 0x7E):
            return False
    return True


@dataclass(frozen=True)
class NameInfo:
    name: str
    name_ja: str | None
    name_en: str | None


def generate_name_info(original_name: str) -> NameInfo:
    """Return the stored name plus its ja/en columns.

    ASCII-only names populate name_en, everything else populates name_ja.
    """
    name = normalize_full_width_symbols(original_name.strip())
    if is_english_only(name):
        return NameInfo(name=name, name_ja=None, name_en=name)
    return NameInfo(name=name, name_ja=name, name_en=None)


def generate_sort_name(name: str) -> str | None:
    """Lowercased name for ASCII names; None where a reading must be entered by hand."""
    if is_english_only(name):
        return name.lower()
    return None


# ---------------------------------------------------------------------------
# Rule 3: parse_event_edition
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EventEdition:
    base_name: str
    edition: int | None


# Most specific first; the bare trailing number is the fallback.
_EDITION_PATTERNS = (
    re.compile(r"^(.+?)\s*第([0-9]+)回$"),
    re.compile(r"^(.+?)\s*[Vv][Oo][Ll]\.?\s*([0-9]+)$"),
    re.compile(r"^(.+?)([0-9]+)$"),
)


def parse_event_edition(event_name: str | None) -> EventEdition:
    """Split an event name into its series base name and edition number.

    "コミックマーケット108" → ("コミックマーケット", 108)
    "博麗神社例大祭 第21回" → ("博麗神社例大祭", 21)
    "M3 2024春"             → ("M3 2024春", None)

    Numbers of 1000 or more are treated as years, not editions.
    """
    v = (event_name or "").strip()
    if not v:
        return EventEdition(base_name=v, edition=None)
    for pattern in _EDITION_PATTERNS:
        m = pattern.match(v)
        if m and m.group(1) and m.group(2):
            edition = int(m.group(2))
            if 0 < edition < 1000:
                return EventEdition(base_name=m.group(1).strip(), edition=edition)
    return EventEdition(base_name=v, edition=None)


# ---------------------------------------------------------------------------
# Rule 4: detect_initial
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InitialInfo:
    initial_script: str
    name_initial: str | None


_HALFWIDTH_KATAKANA = (
    "ｦを ｧぁ ｨぃ ｩぅ ｪぇ ｫぉ ｬゃ ｭゅ ｮょ ｯっ ｰー ｱあ ｲい ｳう ｴえ ｵお "
    "ｶか ｷき ｸく ｹけ ｺこ ｻさ ｼし ｽす ｾせ ｿそ ﾀた ﾁち ﾂつ ﾃて ﾄと "
    "ﾅな ﾆに ﾇぬ ﾈね ﾉの ﾊは ﾋひ ﾌふ ﾍへ ﾎほ ﾏま ﾐみ ﾑむ ﾒめ ﾓも "
    "ﾔや ﾕゆ ﾖよ ﾗら ﾘり ﾙる ﾚれ ﾛろ ﾜわ ﾝん"
)
_HALFWIDTH_KATAKANA_TO_HIRAGANA = {pair[0]: pair[1] for pair in _HALFWIDTH_KATAKANA.split()}

_WA_DAKUON_TO_HIRAGANA = {"ヷ": "わ", "ヸ": "ゐ", "ヹ": "ゑ", "ヺ": "を"}

_VOICED_TO_UNVOICED = dict(zip(
    "がぎぐげござじずぜぞだぢづでどばびぶべぼぱぴぷぺぽゔ",
    "かきくけこさしすせそたちつてとはひふへほはひふへほう",
))


def _character_script(ch: str) -> str:
    code = ord(ch)
    if 0x41 <= code <= 0x5A or 0x61 <= code <= 0x7A:
        return "latin"
    if 0xFF21 <= code <= 0xFF3A or 0xFF41 <= code <= 0xFF5A:
        return "latin"
    if 0x3041 <= code <= 0x3096:
        return "hiragana"
    if 0x30A1 <= code <= 0x30FA:
        return "katakana"
    if 0xFF66 <= code <= 0xFF9D:
        return "katakana"
    if 0x4E00 <= code <= 0x9FFF or 0x3400 <= code <= 0x4DBF:
        return "kanji"
    if 0x30 <= code <= 0x39 or 0xFF10 <= code <= 0xFF19:
        return "digit"
    if (
        code <= 0x7F
        or 0x2000 <= code <= 0x206F
        or 0x3000 <= code <= 0x303F
        or code == 0x30FB
        or 0xFF00 <= code <= 0xFF0F
        or 0xFF1A <= code <= 0xFF20
        or 0xFF5B <= code <= 0xFF65
    ):
        return "symbol"
    return "other"


def _katakana_to_hiragana(ch: str) -> str:
    if ch in _HALFWIDTH_KATAKANA_TO_HIRAGANA:
        return _HALFWIDTH_KATAKANA_TO_HIRAGANA[ch]
    if ch in _WA_DAKUON_TO_HIRAGANA:
        return _WA_DAKUON_TO_HIRAGANA[ch]
    code = ord(ch)
    if 0x30A1 <= code <= 0x30F6:
        return chr(code - 0x60)
    return ch


def detect_initial(name: str | None) -> InitialInfo:
    """Classify the first character of a name for index sorting.

    latin    → upper-case ASCII letter ("Beatles" → "B")
    hiragana → unvoiced hiragana ("ぴあの" → "ひ")
    katakana → unvoiced hiragana ("ピアノ" → "ひ")
    kanji / digit / symbol / other → no initial
    """
    if not name:
        return InitialInfo(initial_script="other", name_initial=None)

    first = name[0]
    script = _character_script(first)

    if script == "latin":
        code = ord(first)
        if code >= 0xFF21:
            first = chr(code - 0xFEE0)
        return InitialInfo(initial_script=script, name_initial=first.upper())
    if script == "katakana":
        hira = _katakana_to_hiragana(first)
        return InitialInfo(script, _VOICED_TO_UNVOICED.get(hira, hira))
    if script == "hiragana":
        return InitialInfo(script, _VOICED_TO_UNVOICED.get(first, first))
    return InitialInfo(initial_script=script, name_initial=None)
