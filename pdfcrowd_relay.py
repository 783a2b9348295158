# Copyright (C) 2009-2018 pdfcrowd.com
#
# Permission is hereby granted, free of charge, to any person
# obtaining a copy of this software and associated documentation
# files (the "Software"), to deal in the Software without
# restriction, including without limitation the rights to use,
# copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the
# Software is furnished to do so, subject to the following
# conditions:
#
# The above copyright notice and this permission notice shall be
# included in all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND,
# EXPRESS OR IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES
# OF MERCHANTABILITY, FITNESS FOR A PARTICULAR PURPOSE AND
# NONINFRINGEMENT. IN NO EVENT SHALL THE AUTHORS OR COPYRIGHT
# HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER LIABILITY,
# WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING
# FROM, OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR
# OTHER DEALINGS IN THE SOFTWARE.

from urllib.parse import urlencode, quote

import argparse
import asyncio
import collections
import logging
import mimetypes
import os
import re
import sys

import httpx

__version__ = '1.0.0'

logger = logging.getLogger(__name__)

API_SELECTOR_BASE = '/api/'
HOST = os.environ.get('PDFCROWD_HOST', 'pdfcrowd.com')
HTTP_PORT = 80
HTTPS_PORT = 443
MULTIPART_BOUNDARY = '----------ThIs_Is_tHe_bOUnDary_$'
USER_AGENT = 'pdfcrowd_relay/%s (https://pdfcrowd.com)' % __version__

FORM_CONTENT_TYPE = 'application/x-www-form-urlencoded'


class Error(Exception):
    """Thrown when an error occurs."""

    # prefix of the text written to a sink when the error ends a conversion
    marker = 'ERROR'

    def __init__(self, error, http_code=None):
        if isinstance(error, bytes):
            error = error.decode('utf-8', 'replace')
        self.error = error

        error_match = re.match(
            r'^(\d+)\.(\d+)\s+-\s+(.*?)(?:\s+Documentation link:\s+(.*))?$',
            self.error,
            re.DOTALL)

        if error_match:
            self.http_code = int(error_match.group(1))
            self.reason_code = int(error_match.group(2))
            self.message = error_match.group(3)
            self.doc_link = error_match.group(4) or ''
        else:
            self.http_code = http_code
            self.reason_code = -1
            self.message = self.error
            if self.http_code:
                self.error = "%s - %s" % (self.http_code, self.error)
            self.doc_link = ''
        super().__init__(self.error)

    def __str__(self):
        return self.error

    def getStatusCode(self):
        return self.http_code

    def getReasonCode(self):
        return self.reason_code

    def getMessage(self):
        return self.message

    def getDocumentationLink(self):
        return self.doc_link


class ValidationError(Error):
    """Invalid arguments, raised before any request is sent."""


class UpstreamError(Error):
    """The conversion service rejected the request."""


class TransportError(Error):
    """The conversion service could not be reached."""
    marker = 'FATAL'


# ======================================
# ===           Output sinks         ===
# ======================================

class OutputSink:
    """Destination of a conversion result.

    A sink receives the response headers suggested for the PDF, the PDF data
    chunk by chunk, and exactly one close() once nothing more will arrive.
    When the conversion fails, fail() is called and the error is kept in the
    `error` attribute. A rejected request calls it before any header or data;
    a connection lost mid-body calls it after the data received so far.

    disposition -- Content-Disposition type, 'attachment' or 'inline'
    filename    -- the file name suggested in Content-Disposition
    """

    def __init__(self, disposition='attachment', filename='generated.pdf'):
        self.disposition = disposition
        self.filename = filename
        self.headers = {}
        self.error = None
        self.closed = False

    def set_header(self, name, value):
        self.headers[name] = value

    def write(self, data):
        raise NotImplementedError

    def fail(self, error):
        self.error = error
        self.write(('%s: %s' % (error.marker, error)).encode('utf-8'))

    def close(self):
        self.closed = True


class MemorySink(OutputSink):
    """Keeps the result in memory."""

    def __init__(self, disposition='attachment', filename='generated.pdf'):
        super().__init__(disposition, filename)
        self.chunks = []
        self.close_count = 0

    def write(self, data):
        self.chunks.append(data)

    def getvalue(self):
        return b''.join(self.chunks)

    def close(self):
        self.close_count += 1
        super().close()


class StreamSink(OutputSink):
    """Forwards the result to an object having method 'write(data)',
    e.g. a file, BytesIO, a socket file or an HTTP response body.

    The stream stays open unless close_stream is set.
    """

    def __init__(self, stream, close_stream=False,
                 disposition='attachment', filename='generated.pdf'):
        super().__init__(disposition, filename)
        self.stream = stream
        self.close_stream = close_stream

    def write(self, data):
        self.stream.write(data)

    def close(self):
        if hasattr(self.stream, 'flush'):
            self.stream.flush()
        if self.close_stream:
            self.stream.close()
        super().close()


class ResponseSink(StreamSink):
    """Sends the result in an HTTP response.

    response -- an object having a mutable mapping 'headers' and methods
                'write(data)' and 'close()'; headers are set on it before
                any data is written, the response is closed at the end

    When the request is rejected the response gets 'Content-Type: text/plain'
    and the error text as its body.
    """

    def __init__(self, response, disposition='attachment',
                 filename='generated.pdf'):
        super().__init__(response, close_stream=True,
                         disposition=disposition, filename=filename)
        self.body_started = False

    def set_header(self, name, value):
        super().set_header(name, value)
        self.stream.headers[name] = value

    def write(self, data):
        self.body_started = True
        super().write(data)

    def fail(self, error):
        if not self.body_started:
            self.set_header('Content-Type', 'text/plain')
        super().fail(error)


class FileSink(OutputSink):
    """Saves the result to a file.

    The file is created on the first write, or on close when the PDF is
    empty. A partially written file is removed when the conversion fails,
    unless remove_on_error is False.
    """

    def __init__(self, path, remove_on_error=True, disposition='attachment'):
        super().__init__(disposition, os.path.basename(path))
        self.path = path
        self.remove_on_error = remove_on_error
        self._file = None

    def write(self, data):
        if self._file is None:
            self._file = open(self.path, 'wb')
        self._file.write(data)

    def close(self):
        if self._file is None and self.error is None:
            self._file = open(self.path, 'wb')
        if self._file is not None:
            self._file.close()
            self._file = None
        if self.error is not None and self.remove_on_error \
                and os.path.exists(self.path):
            os.remove(self.path)
        super().close()


def save_to_file(path, remove_on_error=True):
    """Returns a sink that saves the generated PDF to a file."""
    return FileSink(path, remove_on_error)


# ======================================
# ===       PDFCrowd relay client    ===
# ======================================

Credentials = collections.namedtuple('Credentials', 'username apikey')

ConnectionDefaults = collections.namedtuple(
    'ConnectionDefaults',
    'host port method use_ssl timeout user_agent proxy')


def encode_multipart_post_data(fields, file_name, content):
    head, tail = [], []

    for field, value in fields.items():
        head.append('--' + MULTIPART_BOUNDARY)
        head.append('Content-Disposition: form-data; name="%s"' % field)
        head.append('')
        head.append(str(value))

    # file
    head.append('--' + MULTIPART_BOUNDARY)
    head.append('Content-Disposition: form-data; name="src"; filename="%s"'
                % os.path.basename(file_name))
    mime_type = mimetypes.guess_type(file_name)[0] or 'application/octet-stream'
    head.append('Content-Type: ' + mime_type)
    head.append('')

    # finalize
    tail.append('--' + MULTIPART_BOUNDARY + '--')
    tail.append('')
    body = ['\r\n'.join(head).encode('utf-8'), content,
            '\r\n'.join(tail).encode('utf-8')]
    return b'\r\n'.join(body)


class Client:
    """PDFCrowd API client.

    The convert methods validate their arguments right away and return an
    asyncio.Task which relays the result to the given sink. The task never
    raises for a failed conversion: the error is written to the sink and kept
    in its `error` attribute. The task's result is the sink. The convert
    methods must be called from a running event loop. The client holds a
    reference to each task until it is done, so the task may be left unawaited.
    """

    def __init__(self, username, apikey, host=None, http_port=None,
                 transport=None):
        """Client constructor.

        username  -- your username at PDFCrowd
        apikey    -- your API key
        host      -- API host, defaults to pdfcrowd.com
        http_port -- API port used over HTTP, defaults to 80
        transport -- an httpx async transport, e.g. httpx.MockTransport
        """
        if not username:
            raise ValidationError('Missing username.')
        if not apikey:
            raise ValidationError('Missing apikey.')

        self.credentials = Credentials(username, apikey)
        self.http_port = http_port or HTTP_PORT
        self.transport = transport
        self._tasks = set()
        self.defaults = ConnectionDefaults(
            host=host or HOST,
            port=self.http_port,
            method='POST',
            use_ssl=False,
            timeout=None,
            user_agent=USER_AGENT,
            proxy=None)

    def useSSL(self, use_ssl):
        port = HTTPS_PORT if use_ssl else self.http_port
        self.defaults = self.defaults._replace(use_ssl=bool(use_ssl), port=port)

    def setTimeout(self, timeout):
        """Timeout in seconds for each request, None waits forever."""
        self.defaults = self.defaults._replace(timeout=timeout)

    def setUserAgent(self, user_agent):
        self.defaults = self.defaults._replace(user_agent=user_agent)

    def setProxy(self, host, port, username=None, password=None):
        proxy = None
        if host:
            auth = ''
            if username:
                auth = '%s:%s@' % (quote(username, safe=''),
                                   quote(password or '', safe=''))
            proxy = 'http://%s%s:%d' % (auth, host, port)
        self.defaults = self.defaults._replace(proxy=proxy)

    def convertHtml(self, html, sink=None, options=None):
        """Converts an in-memory html document.

        html    -- a string containing an html document
        sink    -- an OutputSink; if None then a MemorySink is used
        options -- conversion options passed to the API as they are
        """
        if isinstance(html, bytes):
            try:
                html = html.decode('utf-8')
            except UnicodeDecodeError:
                raise ValidationError('convertHtml: the HTML document is not UTF-8.')
        if not isinstance(html, str) or not html:
            raise ValidationError('convertHtml: zero size HTML document.')
        body = urlencode(self._prepare_fields(options, src=html))
        return self._start(body, FORM_CONTENT_TYPE, 'pdf/convert/html/', sink)

    def convertURI(self, uri, sink=None, options=None):
        """Converts a web page.

        uri     -- a web page URL, http:// or https://
        sink    -- an OutputSink; if None then a MemorySink is used
        options -- conversion options passed to the API as they are
        """
        if not isinstance(uri, str) or not re.match(r'(?i)^https?://.+$', uri):
            raise ValidationError('convertURI: invalid URL %r.' % (uri,))
        body = urlencode(self._prepare_fields(options, src=uri))
        return self._start(body, FORM_CONTENT_TYPE, 'pdf/convert/uri/', sink)

    def convertFile(self, fpath, sink=None, options=None):
        """Converts an html file or an archive (.zip, .tar.gz).

        fpath   -- a path to the file, it is read right away
        sink    -- an OutputSink; if None then a MemorySink is used
        options -- conversion options passed to the API as they are
        """
        if not (fpath and os.path.isfile(fpath) and os.path.getsize(fpath)):
            raise ValidationError(
                'convertFile: %s does not exist or has zero size.' % fpath)
        with open(fpath, 'rb') as f:
            content = f.read()
        fields = self._prepare_fields(options)
        fields.pop('src', None)
        body = encode_multipart_post_data(fields, fpath, content)
        content_type = 'multipart/form-data; boundary=%s' % MULTIPART_BOUNDARY
        return self._start(body, content_type, 'pdf/convert/html/', sink)

    async def numTokens(self):
        """Returns the number of available conversion tokens."""
        conn = self.defaults
        body = urlencode(self._prepare_fields(None)).encode('utf-8')
        api_path = 'user/%s/tokens/' % quote(self.credentials.username, safe='')
        try:
            async with self._http_client(conn) as http:
                response = await http.request(
                    conn.method, self._api_url(conn, api_path), content=body,
                    headers=self._headers(conn, body, FORM_CONTENT_TYPE))
        except (httpx.HTTPError, httpx.InvalidURL) as err:
            raise TransportError(str(err) or type(err).__name__)
        if response.status_code >= 299:
            raise UpstreamError(response.content or response.reason_phrase,
                                response.status_code)
        return int(response.text)

    # ----------------------------------------------------------------------
    #
    #                       Private stuff
    #

    def _prepare_fields(self, options, **extra):
        result = dict(options or {})
        result.update(extra)
        result['username'] = self.credentials.username
        result['key'] = self.credentials.apikey
        return result

    def _start(self, body, content_type, api_path, sink):
        if isinstance(body, str):
            body = body.encode('utf-8')
        if sink is None:
            sink = MemorySink()
        loop = asyncio.get_running_loop()
        task = loop.create_task(
            self._relay(self.defaults, body, content_type, api_path, sink))
        # the loop keeps only a weak reference to running tasks
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _api_url(self, conn, api_path):
        scheme = 'https' if conn.use_ssl else 'http'
        return '%s://%s:%d%s%s' % (scheme, conn.host, conn.port,
                                   API_SELECTOR_BASE, api_path)

    def _headers(self, conn, body, content_type):
        headers = {
            'Content-Type': content_type,
            'Content-Length': str(len(body)),
        }
        if conn.user_agent:
            headers['User-Agent'] = conn.user_agent
        return headers

    def _http_client(self, conn):
        kwargs = {'timeout': conn.timeout}
        if self.transport is not None:
            kwargs['transport'] = self.transport
        if conn.proxy:
            kwargs['proxy'] = conn.proxy
        return httpx.AsyncClient(**kwargs)

    def _set_pdf_headers(self, sink):
        sink.set_header('Content-Type', 'application/pdf')
        sink.set_header('Cache-Control', 'no-cache')
        sink.set_header('Accept-Ranges', 'none')
        sink.set_header('Content-Disposition', '%s; filename="%s"'
                        % (sink.disposition, sink.filename))

    # sends a POST to the API and relays the response to the sink
    async def _relay(self, conn, body, content_type, api_path, sink):
        url = self._api_url(conn, api_path)
        headers = self._headers(conn, body, content_type)
        logger.debug('POST %s (%d bytes)', url, len(body))
        try:
            async with self._http_client(conn) as http:
                async with http.stream(conn.method, url, content=body,
                                       headers=headers) as response:
                    if response.status_code < 299:
                        self._set_pdf_headers(sink)
                        size = 0
                        async for chunk in response.aiter_bytes():
                            size += len(chunk)
                            sink.write(chunk)
                        logger.debug('%s: received %d bytes', url, size)
                    else:
                        message = await response.aread()
                        error = UpstreamError(
                            message.strip() or response.reason_phrase,
                            response.status_code)
                        logger.warning('conversion failed: %s', error)
                        sink.fail(error)
        except (httpx.HTTPError, httpx.InvalidURL) as err:
            error = TransportError(str(err) or type(err).__name__)
            logger.error('cannot reach %s: %s', url, error)
            sink.fail(error)
        finally:
            sink.close()
        return sink


def main(argv):
    def term_error(message):
        sys.stderr.write(message + '\n')
        sys.exit(1)

    parser = argparse.ArgumentParser(prog='html2pdf',
                                     description='Conversion from HTML to PDF.',
                                     epilog='produced by: www.pdfcrowd.com')
    parser.add_argument('source',
                        help="Source to be converted. It can be URL, path to a local file or '-' to use stdin as an input text.")
    parser.add_argument('-user-name',
                        help='Your user name at pdfcrowd.com. Defaults to the PDFCROWD_USERNAME environment variable.')
    parser.add_argument('-api-key',
                        help='Your API key at pdfcrowd.com. Defaults to the PDFCROWD_API_KEY environment variable.')
    parser.add_argument('-host', help='API host. Default is %s.' % HOST)
    parser.add_argument('-use-ssl', action='store_true',
                        help='Use HTTPS to connect to the API.')
    parser.add_argument('-timeout', type=float,
                        help='Request timeout in seconds. Default is no timeout.')
    parser.add_argument('-option', action='append', default=[],
                        metavar='NAME=VALUE',
                        help='Conversion option passed to the API, can be repeated.')
    parser.add_argument('-o', dest='output',
                        help='Output file. Default is the standard output.')
    parser.add_argument('-verbose', action='store_true',
                        help='Log the API requests to the standard error.')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format='%(levelname)s %(name)s: %(message)s')

    user_name = args.user_name or os.environ.get('PDFCROWD_USERNAME')
    api_key = args.api_key or os.environ.get('PDFCROWD_API_KEY')
    if not (user_name and api_key):
        term_error('Missing credentials, use -user-name and -api-key.')

    options = {}
    for option in args.option:
        name, sep, value = option.partition('=')
        if not (name and sep):
            term_error("Invalid option '%s', expected NAME=VALUE." % option)
        options[name] = value

    def get_input(source):
        if source == '-':
            return 'convertHtml', sys.stdin.read()

        if re.match('(?i)^https?://.*$', source):
            return 'convertURI', source

        if os.path.isfile(source):
            return 'convertFile', source

        term_error("Invalid source '{}'. Must be a valid file, URL, or '-'.".format(source))

    method, source = get_input(args.source)

    if args.output:
        sink = save_to_file(args.output)
    else:
        sink = StreamSink(sys.stdout.buffer)

    async def convert():
        client = Client(user_name, api_key, args.host)
        client.useSSL(args.use_ssl)
        client.setTimeout(args.timeout)
        return await getattr(client, method)(source, sink, options)

    try:
        asyncio.run(convert())
    except Error as err:
        term_error(str(err))

    if sink.error is not None:
        term_error(str(sink.error))

if __name__ == "__main__":
    main(sys.argv[1:])
