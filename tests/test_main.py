import pytest

import main


def test_severity_command(capsys):
    main.main(["severity", "4.2"])
    assert capsys.readouterr().out.strip() == "2"

    main.main(["severity", "20"])
    assert capsys.readouterr().out.strip() == "4"


def test_invalid_percent_exits(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main.main(["severity", "lots"])
    assert excinfo.value.code == 2
    assert "invalid percent" in capsys.readouterr().err


def test_missing_rpc_urls_exits(monkeypatch, capsys):
    monkeypatch.setattr(main.Settings, "from_env", classmethod(lambda cls: cls()))
    with pytest.raises(SystemExit):
        main.main(["quote", "ETH", "0x" + "a" * 40, "1"])
    assert "RPC_URLS" in capsys.readouterr().err
