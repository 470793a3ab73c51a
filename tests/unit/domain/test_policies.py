import pytest

from chatrelay.domain import notices
from chatrelay.domain.models import Channel
from chatrelay.domain.policies import dedup_key, policy_for


def test_sms_policy():
    p = policy_for(Channel.SMS)
    assert p.max_reply_length == 800
    assert p.supported_content_types == frozenset({"text"})
    assert p.suppress_multipart is True
    assert p.supports_threading is False


def test_whatsapp_policy():
    p = policy_for(Channel.WHATSAPP)
    assert p.max_reply_length is None
    assert p.supported_content_types == frozenset({"text"})
    assert p.suppress_multipart is False
    assert p.supports_threading is True


def test_policy_for_accepts_plain_string():
    assert policy_for("sms") is policy_for(Channel.SMS)


def test_policy_for_unknown_channel():
    with pytest.raises(ValueError):
        policy_for("telegram")


def test_supports_is_case_insensitive():
    p = policy_for(Channel.SMS)
    assert p.supports("TEXT")
    assert p.supports(" text ")
    assert not p.supports("image")
    assert not p.supports("")


def test_exceeds_length():
    sms = policy_for(Channel.SMS)
    assert not sms.exceeds_length("a" * 800)
    assert sms.exceeds_length("a" * 801)
    assert not policy_for(Channel.WHATSAPP).exceeds_length("a" * 10_000)


def test_dedup_key_format():
    assert dedup_key(Channel.SMS, "+1555", "+1777", "ref") == "sms.multipart.+1555:+1777:ref"


def test_too_long_notice_without_support_email():
    text = notices.response_too_long(900, 800, "sms")
    assert text == (
        "The response text contains 900 characters. "
        "Contact support to receive responses with more than 800 characters via sms."
    )
