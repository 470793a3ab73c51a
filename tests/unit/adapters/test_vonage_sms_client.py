import pytest
import requests

import chatrelay.adapters.vonage_sms_client as vc
from chatrelay.domain.errors import TransportError
from chatrelay.domain.models import Channel, OutboundMessage


class DummyResp:
    def __init__(self, *, ok=True, status_code=200, json_payload=None, text=""):
        self.ok = ok
        self.status_code = status_code
        self._json_payload = json_payload
        self.text = text
        self.content = b"{}" if json_payload is not None else b""

    def json(self):
        if isinstance(self._json_payload, Exception):
            raise self._json_payload
        return self._json_payload


class DummySession:
    def __init__(self, resp=None, error=None):
        self._resp = resp
        self._error = error
        self.calls = []

    def post(self, url, data=None, timeout=None):
        self.calls.append({"url": url, "data": data, "timeout": timeout})
        if self._error:
            raise self._error
        return self._resp


def _client():
    return vc.VonageSmsClient(
        api_key="key", api_secret="secret", base_url="https://rest.example.test/", timeout_s=3
    )


def _msg(**overrides):
    data = dict(channel=Channel.SMS, from_="+48111222333", to="+48999888777", body="hello")
    data.update(overrides)
    return OutboundMessage(**data)


def test_normalize_msisdn():
    assert vc._normalize_msisdn("+48 111 222") == "48111222"
    assert vc._normalize_msisdn("0048111") == "48111"
    assert vc._normalize_msisdn("48111") == "48111"
    assert vc._normalize_msisdn("") == ""


def test_send_success_returns_message_id(monkeypatch):
    resp = DummyResp(json_payload={"message-count": "1", "messages": [{"status": "0", "message-id": "V-1"}]})
    sess = DummySession(resp)
    monkeypatch.setattr(vc, "get_session", lambda: sess)

    assert _client().send(_msg()) == "V-1"

    call = sess.calls[0]
    assert call["url"] == "https://rest.example.test/sms/json"
    assert call["timeout"] == 3.0
    assert call["data"] == {
        "api_key": "key",
        "api_secret": "secret",
        "from": "48111222333",
        "to": "48999888777",
        "text": "hello",
    }


def test_send_rejected_status_raises(monkeypatch):
    resp = DummyResp(json_payload={"messages": [{"status": "4", "error-text": "Bad Credentials"}]})
    monkeypatch.setattr(vc, "get_session", lambda: DummySession(resp))

    with pytest.raises(TransportError) as e:
        _client().send(_msg())
    assert "status 4" in str(e.value)
    assert "Bad Credentials" in str(e.value)


def test_send_http_error_raises_with_status(monkeypatch):
    resp = DummyResp(ok=False, status_code=500, json_payload=ValueError("no json"), text="oops")
    monkeypatch.setattr(vc, "get_session", lambda: DummySession(resp))

    with pytest.raises(TransportError) as e:
        _client().send(_msg())
    assert e.value.status_code == 500
    assert "Vonage API error 500" in str(e.value)


def test_send_network_error_raises(monkeypatch):
    sess = DummySession(error=requests.ConnectionError("refused"))
    monkeypatch.setattr(vc, "get_session", lambda: sess)

    with pytest.raises(TransportError) as e:
        _client().send(_msg())
    assert isinstance(e.value.__cause__, requests.ConnectionError)


def test_send_validates_required_fields(monkeypatch):
    monkeypatch.setattr(vc, "get_session", lambda: DummySession(DummyResp(json_payload={})))

    with pytest.raises(TransportError):
        _client().send(_msg(to=""))
    with pytest.raises(TransportError):
        _client().send(_msg(body=""))


def test_disabled_client_does_not_call_api(monkeypatch):
    def boom():
        raise AssertionError("should not open a session")

    monkeypatch.setattr(vc, "get_session", boom)

    c = vc.VonageSmsClient(api_key="", api_secret="")
    assert c.enabled is False
    assert c.send(_msg()) is None
