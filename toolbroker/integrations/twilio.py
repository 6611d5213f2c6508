"""
Twilio Integration

SMS sending and message history through the Twilio REST client.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client as TwilioClient

from toolbroker import config
from toolbroker import logger

from .base import (
    ClientNotConfigured,
    IntegrationError,
    ToolParameter,
    build_module,
    define_operation,
    run_blocking,
)

CATEGORY = "twilio"


@dataclass
class TwilioContext:
    account_sid: Optional[str]
    auth_token: Optional[str]
    from_number: Optional[str] = None
    client_factory: Callable[[str, str], Any] = TwilioClient
    _client: Any = field(default=None, repr=False)

    def client(self):
        """Twilio client, created on first use."""
        if not self.account_sid or not self.auth_token:
            raise ClientNotConfigured("Twilio", ["TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN"])
        if self._client is None:
            self._client = self.client_factory(self.account_sid, self.auth_token)
        return self._client


def _message_dict(message) -> dict:
    sent = getattr(message, 'date_sent', None)
    return {
        'sid': message.sid,
        'to': message.to,
        'from': getattr(message, 'from_', None),
        'body': message.body,
        'status': message.status,
        'direction': getattr(message, 'direction', None),
        'date_sent': sent.isoformat() if hasattr(sent, 'isoformat') else sent,
        'error_code': getattr(message, 'error_code', None),
    }


async def _call(func, *args, **kwargs):
    try:
        return await run_blocking(func, *args, **kwargs)
    except TwilioRestException as e:
        raise IntegrationError(f'Twilio request failed: {e.msg}', status_code=e.status) from e


async def send_sms(args: dict, ctx: TwilioContext):
    from_num = args.get('from_number') or ctx.from_number
    if not from_num:
        raise IntegrationError('Missing Twilio "from" number')

    logger.debug('Sending SMS via Twilio', to=args['to'])
    client = ctx.client()
    message = await _call(
        client.messages.create,
        to=args['to'],
        from_=from_num,
        body=args['body']
    )
    return _message_dict(message)


async def get_message(args: dict, ctx: TwilioContext):
    client = ctx.client()
    message = await _call(client.messages(args['message_sid']).fetch)
    return _message_dict(message)


async def list_messages(args: dict, ctx: TwilioContext):
    client = ctx.client()
    filters = {'limit': args.get('limit') or 20}
    if args.get('to'):
        filters['to'] = args['to']
    if args.get('from_number'):
        filters['from_'] = args['from_number']
    messages = await _call(client.messages.list, **filters)
    return [_message_dict(m) for m in messages]


TWILIO_OPERATIONS = [
    define_operation(
        "twilio_send_sms",
        "Send an SMS message",
        [
            ToolParameter("to", "string", "Destination phone number in E.164 format", required=True),
            ToolParameter("body", "string", "Message text", required=True),
            ToolParameter("from_number", "string", "Sender number (defaults to TWILIO_FROM_NUMBER)"),
        ],
        subcategory="messages",
    ),
    define_operation(
        "twilio_get_message",
        "Fetch a message and its delivery status",
        [ToolParameter("message_sid", "string", "Message SID", required=True)],
        subcategory="messages",
    ),
    define_operation(
        "twilio_list_messages",
        "List recent messages, newest first",
        [
            ToolParameter("to", "string", "Only messages sent to this number"),
            ToolParameter("from_number", "string", "Only messages sent from this number"),
            ToolParameter("limit", "integer", "Maximum messages to return (default: 20)"),
        ],
        subcategory="messages",
    ),
]

TWILIO_HANDLERS = {
    "twilio_send_sms": send_sms,
    "twilio_get_message": get_message,
    "twilio_list_messages": list_messages,
}


def create_module(context: TwilioContext = None):
    if context is None:
        context = TwilioContext(
            account_sid=config.TWILIO_ACCOUNT_SID,
            auth_token=config.TWILIO_AUTH_TOKEN,
            from_number=config.TWILIO_FROM_NUMBER,
        )
    return build_module(
        CATEGORY,
        TWILIO_OPERATIONS,
        TWILIO_HANDLERS,
        context=context,
        display_name="Twilio",
        description="Twilio SMS tools",
        secrets=(context.auth_token,),
    )
