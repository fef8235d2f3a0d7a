import string

from namcore.util import lowercase


def test_ascii_uppercase_maps_to_lowercase():
    assert lowercase(string.ascii_uppercase) == string.ascii_lowercase


def test_mixed_text():
    assert lowercase("WaveNet LSTM") == "wavenet lstm"


def test_non_letters_unchanged():
    assert lowercase(string.digits + string.punctuation) == string.digits + string.punctuation


def test_only_ascii_is_lowered():
    assert lowercase("ÄBÖ") == "ÄbÖ"


def test_idempotent_and_length_preserving():
    text = "Hello, World! 123 ÉCOLE"
    once = lowercase(text)
    assert lowercase(once) == once
    assert len(once) == len(text)


def test_empty_string():
    assert lowercase("") == ""