import logging

from seq2seq_chat.generation import SpecialTokens
from seq2seq_chat.tokenizer import HFTokenizer


class StubHFTokenizer:
    """Mimics the slice of the transformers tokenizer API that HFTokenizer uses."""

    def __init__(self, bos_token_id=None, eos_token_id=None, pad_token_id=None):
        self.bos_token_id = bos_token_id
        self.eos_token_id = eos_token_id
        self.pad_token_id = pad_token_id
        self.encode_kwargs = None
        self.decode_kwargs = None

    def encode(self, text, **kwargs):
        self.encode_kwargs = kwargs
        return [len(word) for word in text.split()]

    def decode(self, ids, **kwargs):
        self.decode_kwargs = kwargs
        return "-".join(str(i) for i in ids)


def test_markers_from_tokenizer_config():
    tok = HFTokenizer(StubHFTokenizer(bos_token_id=10, eos_token_id=11, pad_token_id=12))
    assert tok.special_tokens == SpecialTokens(begin_id=10, end_id=11, pad_id=12)
    assert (tok.begin_id, tok.end_id, tok.pad_id) == (10, 11, 12)


def test_missing_markers_fall_back_and_warn(caplog):
    with caplog.at_level(logging.WARNING, logger="seq2seq_chat.tokenizer"):
        tok = HFTokenizer(StubHFTokenizer(eos_token_id=1))

    assert tok.special_tokens == SpecialTokens(begin_id=0, end_id=1, pad_id=0)
    warned = " ".join(record.getMessage() for record in caplog.records)
    assert "bos_token_id" in warned
    assert "pad_token_id" in warned
    assert "eos_token_id" not in warned


def test_encode_returns_plain_list_with_special_tokens():
    stub = StubHFTokenizer(0, 1, 0)
    ids = HFTokenizer(stub).encode("hi there everyone")

    assert ids == [2, 5, 8]
    assert stub.encode_kwargs == {"add_special_tokens": True}


def test_encode_without_special_tokens():
    stub = StubHFTokenizer(0, 1, 0)
    HFTokenizer(stub, add_special_tokens=False).encode("hi")
    assert stub.encode_kwargs == {"add_special_tokens": False}


def test_decode_skips_special_tokens():
    stub = StubHFTokenizer(0, 1, 0)
    assert HFTokenizer(stub).decode((4, 5)) == "4-5"
    assert stub.decode_kwargs == {"skip_special_tokens": True}
