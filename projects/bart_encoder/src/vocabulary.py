"""Subword vocabulary and validated token references."""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, Mapping, Optional, Tuple, Union

from .errors import InvalidTokenError, VocabularyFormatError

logger = logging.getLogger(__name__)

WORD_BOUNDARY = "Ġ"


@dataclass(frozen=True)
class Token:
    """An id that is guaranteed to exist in ``vocab``.

    Construction fails with InvalidTokenError for ids the vocabulary does not
    know, so holding a Token is proof that it can be rendered and embedded.
    """

    id: int
    vocab: "Vocabulary" = field(repr=False, compare=False)

    def __post_init__(self):
        if self.id not in self.vocab:
            raise InvalidTokenError(f"Token id {self.id} is not in the vocabulary")

    @property
    def text(self) -> str:
        """Raw vocabulary string, word-boundary glyphs included."""
        return self.vocab.substr(self.id)

    def display(self) -> str:
        """Readable form for logs: word boundaries shown as underscores."""
        return self.text.replace(self.vocab.word_boundary, "_")


class Vocabulary:
    """Immutable bidirectional mapping between token ids and subword strings.

    When several ids share one string, string -> id lookups resolve to the
    lowest id so that tokenization is deterministic.
    """

    def __init__(self, id_to_token: Mapping[int, str], word_boundary: str = WORD_BOUNDARY):
        if not id_to_token:
            raise VocabularyFormatError("Vocabulary is empty")
        self.word_boundary = word_boundary
        self._id_to_token: Dict[int, str] = dict(id_to_token)
        self._token_to_id: Dict[str, int] = {}
        for token_id in sorted(self._id_to_token):
            self._token_to_id.setdefault(self._id_to_token[token_id], token_id)

    # === Loading ===
    @classmethod
    def load(
        cls,
        path: Union[str, Path],
        special_tokens: Iterable[str] = (),
        word_boundary: str = WORD_BOUNDARY,
    ) -> "Vocabulary":
        """Load a vocabulary file.

        Accepted formats:
            - JSON object ``{token: id}`` (HuggingFace ``vocab.json``)
            - JSON object ``{id: token}`` with integer-like keys
            - any other file: one token per line, id = line index

        Args:
            path: Vocabulary file
            special_tokens: Strings that must be present (e.g. "<s>", "<unk>")
            word_boundary: Glyph that marks a preceding space

        Raises:
            FileNotFoundError / OSError: file missing or unreadable
            VocabularyFormatError: malformed contents or missing special tokens
        """
        path = Path(path)
        contents = path.read_text(encoding="utf-8")

        if path.suffix == ".json":
            id_to_token = cls._parse_json(contents)
        else:
            id_to_token = cls._parse_lines(contents)

        vocab = cls(id_to_token, word_boundary=word_boundary)
        missing = [tok for tok in special_tokens if tok not in vocab._token_to_id]
        if missing:
            raise VocabularyFormatError(f"Special tokens missing from vocabulary: {missing}")

        logger.info("Loaded vocabulary of %d tokens from %s", len(vocab), path)
        return vocab

    @staticmethod
    def _parse_json(contents: str) -> Dict[int, str]:
        try:
            raw = json.loads(contents)
        except json.JSONDecodeError as e:
            raise VocabularyFormatError(f"Invalid vocabulary JSON: {e}") from e
        if not isinstance(raw, dict):
            raise VocabularyFormatError("Vocabulary JSON must be an object")

        id_to_token: Dict[int, str] = {}
        values_are_strings = raw and all(isinstance(v, str) for v in raw.values())
        for key, value in raw.items():
            if values_are_strings:
                # {id: token}
                try:
                    token_id, token = int(key), value
                except ValueError:
                    raise VocabularyFormatError(f"Non-integer token id {key!r}") from None
            else:
                # {token: id}
                if isinstance(value, bool) or not isinstance(value, int):
                    raise VocabularyFormatError(f"Token {key!r} has non-integer id {value!r}")
                token_id, token = value, key
            if token_id < 0:
                raise VocabularyFormatError(f"Token {token!r} has negative id {token_id}")
            if token_id in id_to_token:
                raise VocabularyFormatError(
                    f"Id {token_id} assigned to both {id_to_token[token_id]!r} and {token!r}"
                )
            id_to_token[token_id] = token
        return id_to_token

    @staticmethod
    def _parse_lines(contents: str) -> Dict[int, str]:
        lines = contents.splitlines()
        for index, line in enumerate(lines):
            if line == "":
                raise VocabularyFormatError(f"Empty token on line {index + 1}")
        return dict(enumerate(lines))

    # === Lookup ===
    def __len__(self) -> int:
        return len(self._id_to_token)

    def __contains__(self, token_id: object) -> bool:
        return token_id in self._id_to_token

    def __iter__(self) -> Iterator[Tuple[int, str]]:
        return iter(sorted(self._id_to_token.items()))

    def substr(self, token_id: int) -> str:
        try:
            return self._id_to_token[token_id]
        except KeyError:
            raise InvalidTokenError(f"Token id {token_id} is not in the vocabulary") from None

    def id_of(self, substr: str) -> Optional[int]:
        """Lowest id whose string equals ``substr``, or None."""
        return self._token_to_id.get(substr)

    def token(self, token_id: int) -> Token:
        return Token(token_id, self)

    def token_for(self, substr: str) -> Token:
        token_id = self.id_of(substr)
        if token_id is None:
            raise InvalidTokenError(f"{substr!r} not found in vocab")
        return Token(token_id, self)

    def render(self, token: Token) -> str:
        """Text a token stands for, with word boundaries turned back into spaces."""
        return self.substr(token.id).replace(self.word_boundary, " ")

    def strings(self) -> Dict[str, int]:
        """Copy of the string -> lowest id map."""
        return dict(self._token_to_id)
