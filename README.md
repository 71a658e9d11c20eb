# resloader

Load resources from a local directory or from a URL. Reload them when they
change, and keep each one with an etag.

## Installation

```
pip install resloader
```

The package uses only the standard library.

## Resources

`resloader.resource.Resource` holds one value and its etag. It is safe to use
from several threads. Use `get()` and `set(resource, etag)` to read or replace
both at once. Use the `resource` and `etag` properties to read or replace one
of them.

```python
from resloader.resource import Resource

rsc = Resource()
rsc.set([1, 2, 3], "v1")
value, etag = rsc.get()   # ([1, 2, 3], "v1")
rsc.etag = "v2"
```

## Loading from a directory

`resloader.dirloader.DirLoader` walks a directory tree. It passes the files
that match its filter to a handler, sorted by path, and stores what the
handler returns in `loader.resource`.

- By default a file is picked up only if its name ends in `.json`. A file is
  skipped when its name, or the name of any directory on its path below the
  root, starts with `_`.
- A file is read again only when its size or modification time changes.
  Files that disappear are dropped.
- The etag is the hex MD5 digest of the newest modification time, written in
  RFC 3339 form. You can replace this with `set_etag_encoder`.
- `load()` returns `True` when something changed and the handler ran.
  Otherwise it returns `False`.

```python
from resloader.dirloader import DirLoader, decode_slice_file_handler

loader = DirLoader("conf.d").set_file_handler(decode_slice_file_handler)
changed = loader.load()
items = loader.resource.resource
```

The default handler, `noop_file_handler`, stores the list of `File` objects
as they are. Each object has `name`, `root`, `path` and `data`.
`decode_slice_file_handler` reads each file as a JSON array and joins the
arrays in path order. A file that is not an array raises `ValueError`.

`json_file_decoder` decodes a single file. Before it decodes, it removes these:

- blank lines,
- lines whose first non-blank characters are `//`,
- trailing `//` comments that are not inside a string.

The same clean-up is available for any marker as
`resloader.comments.remove_line_comments(data, comments)`. The module defines
the constants `COMMENT_SLASHES` (`b"//"`) and `COMMENT_HASH` (`b"#"`).

### Filters

You can build filters with:

- `allow_prefix_file_filter`
- `deny_prefix_file_filter`
- `allow_suffix_file_filter`
- `deny_suffix_file_filter`

Each of these checks every path component below the root. `json_file_filter`
checks the file name. Combine filters with `and_filter` and `or_filter`. Pass
the result to `DirLoader.set_file_filter`. `default_file_filter` is the filter
a new loader starts with.

```python
from resloader.dirloader import and_filter, allow_suffix_file_filter, deny_prefix_file_filter

loader.set_file_filter(and_filter(allow_suffix_file_filter(".json"), deny_prefix_file_filter(".")))
```

## Loading from a URL

`resloader.urlloader.UrlLoader` fetches a URL with GET and sends the last
etag in an `If-Match` header.

- On `200`, the body is decoded and stored with the response's `Etag` header.
  The default decoder is `json.loads`.
- On `304`, the current resource is kept.
- Any other status raises `UrlLoadError`, which carries `status` and `body`.
- `load()` returns `(resource, etag)`.

```python
from resloader.urlloader import UrlLoader

loader = UrlLoader("http://localhost:8080/resources")
resource, etag = loader.load()
```

The default client is `UrllibClient`, which has a 5 second timeout. You can
replace it in two ways:

- `set_client` takes any object that has a `do(request)` method returning a
  `Response(status, headers, body)`.
- `set_sender` takes a plain function and wraps it in a `FuncClient`.

`set_decoder` replaces the function that turns the body bytes into the
resource.

## Reloading in the background

Both loaders have a blocking `sync` method:

- It loads once, then loads again every `interval` seconds. An interval of 0
  or less means 60 seconds.
- It also loads whenever the `reload` event is set.
- It returns once the `stop` event is set.
- Errors are logged, not raised.

The two methods differ in their arguments and in when the callback runs:

- `UrlLoader.sync(stop, rsctype, interval, reload, callback)`. The callback
  gets the resource when its etag differs from the last one seen. `rsctype`
  is used only in log messages.
- `DirLoader.sync(stop, interval, reload, callback)`. The callback gets the
  resource whenever `load()` reports a change.

```python
import threading

stop = threading.Event()
reload = threading.Event()
thread = threading.Thread(
    target=loader.sync,
    args=(stop, "items", 30.0, reload, print),
)
thread.start()
# later: reload.set() to load at once, stop.set() to finish
```

## What it does not do

- There is no command-line tool. The package is a library only.
- Changes are found by polling at each interval, or when you ask for a
  reload. The package does not watch the file system for changes.