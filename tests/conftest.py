"""
Shared fixtures: a fake conversion service served through httpx.MockTransport.
"""

from urllib.parse import parse_qsl

import httpx
import pytest

import pdfcrowd_relay

PDF_CHUNKS = [b'%PDF-1.4\n', b'1 0 obj << >> endobj\n', b'%%EOF\n']


async def _iter_chunks(chunks, error=None):
    for chunk in chunks:
        yield chunk
    if error is not None:
        raise error


class FakeService:
    """Records every request and answers with a canned response."""

    def __init__(self):
        self.requests = []
        self.status = 200
        self.chunks = list(PDF_CHUNKS)
        self.exception = None
        self.body_error = None
        self.headers = {}

    def __call__(self, request):
        self.requests.append(request)
        if self.exception is not None:
            raise self.exception
        if self.status < 299:
            return httpx.Response(self.status, headers=self.headers,
                                  content=_iter_chunks(self.chunks, self.body_error))
        return httpx.Response(self.status, content=b''.join(self.chunks))

    @property
    def last_request(self):
        return self.requests[-1]

    def form_fields(self, request=None):
        request = request or self.last_request
        return parse_qsl(request.content.decode('utf-8'), keep_blank_values=True)


@pytest.fixture
def service():
    return FakeService()


@pytest.fixture
def transport(service):
    return httpx.MockTransport(service)


@pytest.fixture
def client(transport):
    return pdfcrowd_relay.Client('tester', 'secret', host='api.test',
                                 transport=transport)


@pytest.fixture
def html_file(tmp_path):
    path = tmp_path / 'page.html'
    path.write_text('<html><body>Uploaded content!</body></html>',
                    encoding='utf-8')
    return path
