from core.result import PENDING, Invalid, Ready, combine, from_optional


def test_combine_prefers_invalid_over_pending():
    assert combine(Ready(1), Ready("a")) == Ready((1, "a"))
    assert combine(Ready(1), PENDING) is PENDING
    assert combine(PENDING, Invalid("bad"), Invalid("worse")) == Invalid("bad")


def test_from_optional():
    assert from_optional(None, "missing") == Invalid("missing")
    assert from_optional(0, "missing") == Ready(0)
