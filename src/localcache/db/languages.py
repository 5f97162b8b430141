"""Supported dictionary languages.

The set of languages is closed: every member of Language owns exactly one
table in the dictionary database and one directory on the shard host.
"""

from __future__ import annotations

import string
from dataclasses import dataclass
from enum import StrEnum
from urllib.parse import quote

# One shard per letter, downloaded in this order
SHARD_LETTERS: tuple[str, ...] = tuple(string.ascii_lowercase)
SHARD_COUNT = len(SHARD_LETTERS)


class Language(StrEnum):
    """Language codes with an offline dictionary."""

    EN = "en"
    ES = "es"
    FR = "fr"
    DE = "de"
    IT = "it"
    PT = "pt"
    NL = "nl"
    SV = "sv"
    PL = "pl"
    RO = "ro"
    CS = "cs"
    FI = "fi"
    DA = "da"
    NO = "no"
    NB = "nb"
    NN = "nn"
    ID = "id"
    MS = "ms"
    TR = "tr"
    VI = "vi"
    LT = "lt"
    SK = "sk"

    @property
    def info(self) -> LanguageInfo:
        return LANGUAGE_INFO[self]

    @property
    def table_name(self) -> str:
        """SQLite table holding this language's entries."""
        return f"dict_{self.value}"

    @property
    def meta_key(self) -> str:
        """Key of this language's row in the dictionary meta table."""
        return f"lang-{self.value}"


@dataclass(frozen=True, slots=True)
class LanguageInfo:
    """Display name and shard directory for a language."""

    name: str
    shard_dir: str

    @property
    def url_path(self) -> str:
        return quote(self.shard_dir)


LANGUAGE_INFO: dict[Language, LanguageInfo] = {
    Language.EN: LanguageInfo("English", "English"),
    Language.ES: LanguageInfo("Spanish", "Spanish"),
    Language.FR: LanguageInfo("French", "French"),
    Language.DE: LanguageInfo("German", "German"),
    Language.IT: LanguageInfo("Italian", "Italian"),
    Language.PT: LanguageInfo("Portuguese", "Portuguese"),
    Language.NL: LanguageInfo("Dutch", "Dutch"),
    Language.SV: LanguageInfo("Swedish", "Swedish"),
    Language.PL: LanguageInfo("Polish", "Polish"),
    Language.RO: LanguageInfo("Romanian", "Romanian"),
    Language.CS: LanguageInfo("Czech", "Czech"),
    Language.FI: LanguageInfo("Finnish", "Finnish"),
    Language.DA: LanguageInfo("Danish", "Danish"),
    Language.NO: LanguageInfo("Norwegian", "Norwegian"),
    Language.NB: LanguageInfo("Norwegian (Bokmål)", "Norwegian (Bokmål)"),
    Language.NN: LanguageInfo("Norwegian (Nynorsk)", "Norwegian (Nynorsk)"),
    Language.ID: LanguageInfo("Indonesian", "Indonesian"),
    Language.MS: LanguageInfo("Malay", "Malay"),
    Language.TR: LanguageInfo("Turkish", "Turkish"),
    Language.VI: LanguageInfo("Vietnamese", "Vietnamese"),
    Language.LT: LanguageInfo("Lithuanian", "Lithuanian"),
    Language.SK: LanguageInfo("Slovak", "Slovak"),
}

if set(LANGUAGE_INFO) != set(Language):
    raise RuntimeError(
        f"LANGUAGE_INFO is missing entries for {sorted(set(Language) - set(LANGUAGE_INFO))}"
    )


def parse_language(code: str) -> Language | None:
    """Return the Language for a code (case/whitespace-insensitive), or None."""
    try:
        return Language(code.strip().lower())
    except ValueError:
        return None
