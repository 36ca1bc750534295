"""
Inbound webhook handling for dialer provider events.

Key components:
- signature: HMAC-SHA256 verification over the raw request body.
- normalizer: Maps each known provider payload shape onto the canonical
  ``TelephonyEvent`` union.
- dispatcher: ``WebhookDispatcher``, the listener registry that ties the two
  together and fans events out.

Usage examples:
```python
from call_assistant.webhooks.dispatcher import WebhookDispatcher

dispatcher = WebhookDispatcher(webhook_secret="s3cret")
dispatcher.add_listener(lambda event: print(event.kind, event.call_id))
await dispatcher.handle_inbound(raw_body, payload, signature_header)
```
"""
