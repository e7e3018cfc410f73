"""Greedy longest-match subword tokenizer."""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .config import BartConfig, BART_LARGE_CNN
from .errors import InvalidTokenError, SequenceTooLongError, VocabularyFormatError
from .vocabulary import Token, Vocabulary

logger = logging.getLogger(__name__)


class WordPieceTokenizer:
    """Splits text into the longest known vocabulary entries, left to right.

    Spaces are first replaced by the vocabulary's word-boundary glyph so that
    word-initial subwords ("Ġthe") can be told apart from word-internal ones
    ("the"). At each position the longest matching entry wins; equal-length
    matches resolve to the lowest id. Text no entry matches becomes one
    <unk> token per character.

    Args:
        vocab: Loaded vocabulary
        config: Supplies the special-token strings and the frame length
    """

    def __init__(self, vocab: Vocabulary, config: BartConfig = BART_LARGE_CNN):
        self.vocab = vocab
        self.config = config

        try:
            self.bos = vocab.token_for(config.bos_token)
            self.eos = vocab.token_for(config.eos_token)
            self.pad = vocab.token_for(config.pad_token)
            self.unk = vocab.token_for(config.unk_token)
        except InvalidTokenError as e:
            raise VocabularyFormatError(f"Vocabulary lacks a special token: {e}") from e

        # length -> {string: lowest id}, tried longest first
        self._by_length: Dict[int, Dict[str, int]] = {}
        for substr, token_id in vocab.strings().items():
            if substr:
                self._by_length.setdefault(len(substr), {})[substr] = token_id
        self._lengths = sorted(self._by_length, reverse=True)

    @classmethod
    def from_file(
        cls, vocab_path: Union[str, Path], config: BartConfig = BART_LARGE_CNN
    ) -> "WordPieceTokenizer":
        vocab = Vocabulary.load(
            vocab_path,
            special_tokens=list(config.special_tokens.values()),
            word_boundary=config.word_boundary,
        )
        return cls(vocab, config)

    def preprocess(self, text: str) -> str:
        return text.replace(" ", self.vocab.word_boundary)

    def longest_match(self, text: str, start: int) -> Optional[Token]:
        """Longest vocabulary entry that is a prefix of ``text[start:]``."""
        remaining = len(text) - start
        for length in self._lengths:
            if length > remaining:
                continue
            token_id = self._by_length[length].get(text[start:start + length])
            if token_id is not None:
                return Token(token_id, self.vocab)
        return None

    def tokenize(self, text: str) -> List[Token]:
        text = self.preprocess(text)
        tokens = []
        start = 0
        while start < len(text):
            token = self.longest_match(text, start)
            if token is not None:
                tokens.append(token)
                start += len(token.text)
            else:
                logger.warning(
                    "Unrecognized text sequence %r at %d. Inserting %s token",
                    text[start], start, self.config.unk_token,
                )
                tokens.append(self.unk)
                start += 1
        logger.debug("Tokenized text into %d tokens", len(tokens))
        return tokens

    def frame_for_model(
        self, tokens: Sequence[Token], max_seq_len: Optional[int] = None
    ) -> List[Token]:
        """Format tokens the way BART was trained to process them.

        <s> tokens... </s> <pad> <pad> ... with exactly ``max_seq_len`` entries.

        Raises:
            SequenceTooLongError: if the tokens plus <s> and </s> do not fit
        """
        max_seq_len = self.config.max_seq_len if max_seq_len is None else max_seq_len
        framed_len = len(tokens) + 2
        if framed_len > max_seq_len:
            raise SequenceTooLongError(
                f"{len(tokens)} tokens plus start/end tokens exceed the maximum "
                f"sequence length of {max_seq_len}"
            )

        padding_length = max_seq_len - framed_len
        framed = [self.bos, *tokens, self.eos] + [self.pad] * padding_length
        logger.debug(
            "Framed %d tokens with %d padding tokens", len(tokens), padding_length
        )
        return framed

    def decode(self, tokens: Sequence[Token], skip_special_tokens: bool = True) -> str:
        special = {self.bos.id, self.eos.id, self.pad.id}
        return "".join(
            self.vocab.render(token)
            for token in tokens
            if not (skip_special_tokens and token.id in special)
        )
