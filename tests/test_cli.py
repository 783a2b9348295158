import functools
import io

import pytest

import pdfcrowd_relay

from conftest import PDF_CHUNKS


@pytest.fixture
def cli(monkeypatch, transport):
    monkeypatch.setattr(pdfcrowd_relay, 'Client',
                        functools.partial(pdfcrowd_relay.Client, transport=transport))
    monkeypatch.setenv('PDFCROWD_USERNAME', 'tester')
    monkeypatch.setenv('PDFCROWD_API_KEY', 'secret')
    return pdfcrowd_relay.main


def test_convert_file_to_output(cli, service, html_file, tmp_path):
    out = tmp_path / 'out.pdf'

    cli(['-option', 'width=8in', '-option', 'footer_html=%p/%n',
         '-o', str(out), str(html_file)])

    assert out.read_bytes() == b''.join(PDF_CHUNKS)
    body = service.last_request.content
    assert b'name="width"\r\n\r\n8in' in body
    assert b'name="footer_html"\r\n\r\n%p/%n' in body
    assert b'name="username"\r\n\r\ntester' in body


def test_convert_url(cli, service, tmp_path):
    out = tmp_path / 'out.pdf'
    cli(['-user-name', 'other', '-api-key', 'key2', '-o', str(out),
         'http://example.com'])
    assert service.last_request.url.path == '/api/pdf/convert/uri/'
    assert dict(service.form_fields())['username'] == 'other'


def test_convert_stdin(cli, service, monkeypatch, tmp_path):
    monkeypatch.setattr('sys.stdin', io.StringIO('<p>from stdin</p>'))
    out = tmp_path / 'out.pdf'
    cli(['-o', str(out), '-'])
    assert dict(service.form_fields())['src'] == '<p>from stdin</p>'
    assert out.exists()


def test_upstream_error_exits(cli, service, html_file, tmp_path, capsys):
    service.status = 500
    service.chunks = [b'Internal error']
    out = tmp_path / 'out.pdf'

    with pytest.raises(SystemExit) as exc:
        cli(['-o', str(out), str(html_file)])

    assert exc.value.code == 1
    assert not out.exists()
    assert '500 - Internal error' in capsys.readouterr().err


def test_missing_credentials(cli, monkeypatch, html_file):
    monkeypatch.delenv('PDFCROWD_USERNAME')
    with pytest.raises(SystemExit) as exc:
        cli([str(html_file)])
    assert exc.value.code == 1


def test_invalid_source(cli, service, tmp_path):
    with pytest.raises(SystemExit):
        cli([str(tmp_path / 'missing.html')])
    assert service.requests == []


def test_invalid_option(cli, service, html_file):
    with pytest.raises(SystemExit):
        cli(['-option', 'width', str(html_file)])
    assert service.requests == []


def test_empty_stdin_is_rejected(cli, service, monkeypatch, capsys):
    monkeypatch.setattr('sys.stdin', io.StringIO(''))
    with pytest.raises(SystemExit):
        cli(['-'])
    assert 'zero size' in capsys.readouterr().err
    assert service.requests == []
