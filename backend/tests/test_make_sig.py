import json

from make_sig import main, make_signature

from cryptopay.services.signature import derive_signing_key, verify


def test_make_signature_verifies():
    payload = json.dumps({"update_id": 1, "update_type": "invoice_paid"})
    signature = make_signature("5675:test_token", payload)
    assert verify(derive_signing_key("5675:test_token"), payload.encode(), signature)


def test_main_prints_signature(capsys):
    assert main(["make_sig.py", "5675:test_token", "{}"]) == 0
    assert capsys.readouterr().out.strip() == make_signature("5675:test_token", "{}")


def test_main_rejects_invalid_json(capsys):
    assert main(["make_sig.py", "5675:test_token", "{invalid json}"]) == 1
    assert "valid JSON" in capsys.readouterr().err


def test_main_usage(capsys):
    assert main(["make_sig.py"]) == 1
    assert "Usage" in capsys.readouterr().err
