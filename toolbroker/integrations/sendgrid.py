"""
SendGrid Integration

Email delivery through the SendGrid v3 API client.
"""

import json
from dataclasses import dataclass
from typing import Any, Callable, Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Cc, Bcc

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

CATEGORY = "sendgrid"


@dataclass
class SendGridContext:
    api_key: Optional[str]
    from_address: str = "no-reply@example.com"
    client_factory: Callable[[str], Any] = SendGridAPIClient

    def client(self):
        if not self.api_key:
            raise ClientNotConfigured("SendGrid", ["SENDGRID_API_KEY"])
        return self.client_factory(self.api_key)


def _decode_body(body: Any) -> Any:
    if isinstance(body, bytes):
        body = body.decode('utf-8', errors='replace')
    if isinstance(body, str) and body:
        try:
            return json.loads(body)
        except ValueError:
            return body
    return body or None


def _check(response, action: str):
    if response.status_code >= 400:
        raise IntegrationError(
            f'SendGrid returned status {response.status_code} while {action}',
            status_code=response.status_code
        )


async def send_email(args: dict, ctx: SendGridContext):
    mail = Mail(
        from_email=args.get('from_email') or ctx.from_address,
        to_emails=args['to'],
        subject=args['subject'],
        plain_text_content=args['body']
    )

    if args.get('html_body'):
        mail.add_html_content(args['html_body'])

    for cc_email in args.get('cc') or []:
        mail.add_cc(Cc(cc_email))

    for bcc_email in args.get('bcc') or []:
        mail.add_bcc(Bcc(bcc_email))

    if args.get('reply_to'):
        mail.reply_to = args['reply_to']

    logger.debug(f"Sending email via SendGrid to {args['to']}")
    client = ctx.client()
    response = await run_blocking(client.send, mail)
    _check(response, 'sending email')

    return {
        'status_code': response.status_code,
        'message_id': response.headers.get('X-Message-Id'),
        'to': args['to'],
        'subject': args['subject'],
    }


async def list_templates(args: dict, ctx: SendGridContext):
    client = ctx.client()
    query_params = {
        'generations': args.get('generations') or 'dynamic',
        'page_size': args.get('page_size') or 50,
    }
    response = await run_blocking(client.client.templates.get, query_params=query_params)
    _check(response, 'listing templates')
    return _decode_body(response.body)


SENDGRID_OPERATIONS = [
    define_operation(
        "sendgrid_send_email",
        "Send a plain text email, optionally with an HTML alternative",
        [
            ToolParameter("to", "string", "Recipient email address", required=True),
            ToolParameter("subject", "string", "Email subject line", required=True),
            ToolParameter("body", "string", "Email body content (plain text)", required=True),
            ToolParameter("html_body", "string", "Optional HTML body"),
            ToolParameter("from_email", "string", "Optional sender email (overrides SENDGRID_FROM)"),
            ToolParameter("cc", "array", "CC recipients", items={"type": "string"}),
            ToolParameter("bcc", "array", "BCC recipients", items={"type": "string"}),
            ToolParameter("reply_to", "string", "Reply-to address"),
        ],
        subcategory="mail",
    ),
    define_operation(
        "sendgrid_list_templates",
        "List transactional templates",
        [
            ToolParameter("generations", "string", "Template generation", enum=["legacy", "dynamic"]),
            ToolParameter("page_size", "integer", "Templates per page (default: 50)"),
        ],
        subcategory="templates",
    ),
]

SENDGRID_HANDLERS = {
    "sendgrid_send_email": send_email,
    "sendgrid_list_templates": list_templates,
}


def create_module(context: SendGridContext = None):
    if context is None:
        context = SendGridContext(
            api_key=config.SENDGRID_API_KEY,
            from_address=config.SENDGRID_FROM,
        )
    return build_module(
        CATEGORY,
        SENDGRID_OPERATIONS,
        SENDGRID_HANDLERS,
        context=context,
        display_name="SendGrid",
        description="SendGrid transactional email tools",
        secrets=(context.api_key,),
    )
