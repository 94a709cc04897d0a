# cachingproxy

A small threaded HTTP forward proxy. It accepts absolute-form `GET`
requests from clients, forwards them to the origin server and keeps whole
responses in an in-memory, least-recently-used cache. When a client sends
exactly the same request text again, the proxy answers it from the cache.

It has no dependencies outside the standard library.

## Installation

```
pip install .
```

## Running the proxy

```
cachingproxy 8081
```

The only argument is the port to listen on; without exactly one argument
the command prints a usage line and exits with status 1. The same entry
point is `cachingproxy.server.main`. Progress is logged at `INFO` level.

Point a client at it:

```
curl -x http://localhost:8081 http://example.com/
```

How requests are handled:

- at most 10 clients are served at the same time; further connections wait
  for a free slot;
- a request is read until the blank line that ends its headers, up to
  4096 bytes;
- the cache key is the request text as received. If it is in the cache,
  the cached bytes are sent back without contacting the origin;
- otherwise the request must parse as an absolute-URI `GET` with version
  `HTTP/1.0` or `HTTP/1.1`; anything else is dropped and the connection is
  closed without a reply;
- the proxy sends `GET <path> <version>` to the origin (port 80 unless the
  URI names one), adding a `Host` header if the client did not send one,
  streams the reply to the client and then caches it;
- the cache holds up to 200 MiB, and no single entry may be larger than
  10 MiB. Larger responses are passed through without being cached. When
  the cache is full, the entry used least recently is dropped first.

If the origin server cannot be reached, the client gets a
`500 Internal Server Error` page.

## What it does not do

- Only `GET` is forwarded: there is no `CONNECT` tunnelling, so HTTPS
  cannot go through it, and no `POST` or other methods.
- The cache lives in memory only and is lost when the process stops. It
  does not look at `Cache-Control`, `Expires` or the response status:
  every complete response is cached and kept until it is evicted.
- Each client connection carries a single request and is then closed.

## Using the library

### Parsing requests (`cachingproxy.parse`)

```python
from cachingproxy.parse import ParsedRequest, ParseError

raw = (
    b"GET http://www.example.com:80/index.html HTTP/1.0\r\n"
    b"If-Modified-Since: Sat, 29 Oct 1994 19:43:31 GMT\r\n\r\n"
)
request = ParsedRequest.parse(raw)
request.method          # "GET"
request.protocol        # "http"
request.host            # "www.example.com"
request.port            # "80"
request.path            # "/index.html"
request.version         # "HTTP/1.0"

request.get_header("If-Modified-Since").value
request.remove_header("If-Modified-Since")
request.set_header("Last-Modified", "Wed, 12 Feb 2014 12:43:31 GMT")

request.request_line()      # request line with its CRLF
request.unparse()           # request line, headers and the blank line
request.unparse_headers()   # headers and the blank line only
request.total_len()         # len(request.unparse())
request.headers_len()       # len(request.unparse_headers())
```

`ParsedRequest.parse` accepts `bytes` or `str` between 4 and 65535 bytes
long and raises `ParseError` (a `ValueError`) for anything that is not a
well-formed absolute-URI `GET` request ending in a blank line. A URI with
no path gets the path `/`.

Headers are kept by exact key. `set_header` replaces an existing header
and moves it to the end; `get_header` returns a `ParsedHeader` (with `key`
and `value`) or `None`; `remove_header` raises `KeyError` for a missing
key. `request.headers` lists them in the order they are written.

### The cache (`cachingproxy.cache`)

```python
from cachingproxy.cache import LRUCache

cache = LRUCache(max_size=1 << 20, max_element_size=1 << 16)
key = "GET http://example.com/ HTTP/1.1\r\n\r\n"
cache.add(b"HTTP/1.1 200 OK\r\n\r\nhello", key)   # True
element = cache.find(key)                          # CacheElement or None
element.data                                       # b"HTTP/1.1 200 OK..."
len(cache)                                         # 1
cache.size                                         # bytes counted against max_size
cache.remove_oldest()                              # evicts and returns an element
```

`add` returns `False` when the entry is larger than `max_element_size`;
adding under an existing key replaces the entry. `find` marks an entry as
recently used. The cache is safe to share between threads.

### The server (`cachingproxy.server`)

```python
from cachingproxy.cache import LRUCache
from cachingproxy.server import ProxyServer

server = ProxyServer(8081, LRUCache(200 << 20, 10 << 20), 10)
server.serve_forever()
```

`ProxyServer.handle_client(conn)` serves one accepted socket and closes
it. The module also provides `error_response(status_code, now=None)`,
which builds the HTML error reply for 400, 403, 404, 500, 501 and 505
(raising `ValueError` for other codes), `check_http_version(version)` and
`connect_remote(host, port)`.

## Running the tests

```
pip install .[test]
pytest
```