# ioslink

`ioslink` is a Python library with the message formats and service clients
used to talk to iOS devices. You supply the byte connection to the device. The
library builds the requests, parses the replies and raises exceptions when
something goes wrong.

## What is in it

- `ioslink.dtx`: the DTX framing used by Instruments-style services.
  - `encoder`: `encode(...)` builds a complete message and
    `build_ack_message(msg)` builds the 48 byte acknowledgement.
  - `decoder`: `read_message(stream, unarchiver)` reads one message or
    fragment from a blocking binary stream. `decode_non_blocking(data,
    unarchiver)` decodes from a buffer and returns `(message, remaining_bytes)`.
  - `fragments.FragmentDecoder` reassembles fragmented messages.
  - `primitive_dictionary`: `PrimitiveDictionary` (`add_int32`, `add_bytes`,
    `arguments`, `to_bytes`), `decode_auxiliary` and `EntryType`.
  - `message`: `Message`, `PayloadHeader`, `AuxiliaryHeader` and `MessageType`.
  - `compression.decompress` unpacks LZ4 payloads made of `bv41` chunks.
  - `errors`: `DtxError`, `IncompleteError`, `OutOfSyncError`,
    `is_incomplete` and `is_out_of_sync`.
  - `channel.Channel` and `connection.Connection` handle request/response
    traffic. This covers `method_call`, `method_call_async`,
    `send_and_await_reply`, `request_channel_identifier`,
    `add_default_channel_receiver` and `for_channel_request`, plus a background
    reader started with `Connection.start()`.
- `ioslink.lockdown`: `LockdownClient` provides `get_value`,
  `get_value_for_domain`, `set_value_for_domain`, `get_values`,
  `get_product_version` and `get_wifi_mac`. The module also has the request
  builders `new_get_value` and `new_set_value` and the parser
  `parse_value_response`. Failures raise `LockdownError`.
- `ioslink.settings`: setting helpers that work through a `LockdownClient`.
  - AssistiveTouch, VoiceOver and Zoom: `get_assistive_touch` and
    `set_assistive_touch`, `get_voice_over` and `set_voice_over`,
    `get_zoom_touch` and `set_zoom_touch`.
  - 24 hour clock: `get_uses_24_hour_clock` and `set_uses_24_hour_clock`.
  - Language: `get_language` and `set_language`, with `LanguageConfiguration`.
  - Time: `set_time` and `set_system_time`.
- `ioslink.installation`: `InstallationProxy` provides `browse_user_apps`,
  `browse_system_apps`, `browse_all_apps` and `uninstall`. It returns `AppInfo`
  records, and failures raise `InstallationError`.
- `ioslink.devices`: usbmuxd messages. The request builders are
  `read_devices_request` and `listen_request`. The parsers are
  `device_list_from_bytes`, which returns a `DeviceList`, and
  `attached_from_bytes`, which returns an `AttachedMessage`.
- `ioslink.images`: developer disk images.
  - `match_available(version)` picks the best available image version.
  - `find_image` and `look_for_image` locate an image in a local directory.
- `ioslink.instruments`: `DeviceStateControl` lists, enables and disables
  device condition profiles on a DTX `Connection`. The module also has
  `verify_profile_and_type`, `decode_profile_types`, `extract_map_payload` and
  `LoggingDispatcher`.

## Installation

```
pip install ioslink
```

To run the tests:

```
pip install "ioslink[test]"
pytest
```

## Transports

`Connection`, `LockdownClient` and `InstallationProxy` take a transport. A
transport is any object with these three methods:

- `send(data: bytes)`
- `reader()`, which returns a binary stream with `read(n)`
- `close()`

Lockdown and the installation proxy exchange XML plists, each preceded by a
4 byte big-endian length.

DTX payloads and method arguments are archived objects. Pass
`archiver=` (an object to bytes) and `unarchiver=` (bytes to a list of
objects) to `Connection`. If there is no unarchiver, payloads are returned as
raw bytes. Method calls need an archiver.

## Examples

Encode a DTX message and decode it again:

```python
from ioslink.dtx.encoder import encode
from ioslink.dtx.decoder import decode_non_blocking
from ioslink.dtx.message import MessageType
from ioslink.dtx.primitive_dictionary import PrimitiveDictionary

aux = PrimitiveDictionary()
aux.add_int32(5)
raw = encode(1, 0, 0, True, MessageType.METHOD_INVOCATION, b"", aux)
message, rest = decode_non_blocking(raw, unarchiver=None)
assert message.identifier == 1 and rest == b""
assert message.auxiliary.arguments() == [5]
```

Pick the developer image that fits a device:

```python
from ioslink.images import match_available

match_available("13.6.1")   # "13.5"
match_available("14.7.1")   # "14.7.1"
```

Read and change settings through lockdown:

```python
from ioslink.lockdown import LockdownClient
from ioslink.settings import get_language, set_uses_24_hour_clock

with LockdownClient(transport) as client:
    config = get_language(client)
    set_uses_24_hour_clock(client, True)
```

## Errors

The non-blocking decoder raises `IncompleteError` when it needs more bytes and
`OutOfSyncError` when the magic bytes are wrong. Both are subclasses of
`DtxError`. The blocking reader raises `EOFError` when the stream ends before
a message is complete.

## What it does not do

- It does not open connections. There is no usbmuxd socket client, no device
  pairing, no TLS session setup and no starting of device services. You
  provide a connected transport.
- It has no NSKeyedArchiver implementation. Archiving is delegated to the
  `archiver` and `unarchiver` callables you pass in.
- `ioslink.images` does not download or mount images. It only selects a
  version and finds files that are already on disk.
- There is no command-line program.