"""
Resend Integration

Email delivery through the Resend REST API.

Subcategories:
- emails: send, get, cancel
- domains: list, get, create
- audiences: list, create
- contacts: list, create
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from toolbroker import config
from toolbroker import logger

from .base import (
    ClientNotConfigured,
    IntegrationError,
    ToolParameter,
    build_module,
    compact,
    define_operation,
    run_blocking,
)

CATEGORY = "resend"

ADDRESS_ITEM = {"type": "string"}


@dataclass
class ResendContext:
    """Credentials and HTTP session shared by all Resend handlers."""
    api_key: Optional[str]
    from_address: str = "no-reply@example.com"
    base_url: str = "https://api.resend.com"
    timeout: int = 30
    session: requests.Session = field(default_factory=requests.Session)

    def request(self, method: str, path: str, payload: Dict[str, Any] = None) -> Any:
        """Perform one API request; raises IntegrationError on failure."""
        if not self.api_key:
            raise ClientNotConfigured("Resend", ["RESEND_API_KEY"])

        headers = {
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json'
        }
        url = f"{self.base_url.rstrip('/')}{path}"
        logger.debug(f'Resend {method} {path}')

        try:
            response = self.session.request(
                method,
                url,
                json=payload,
                headers=headers,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise IntegrationError(f'Failed to connect to Resend API: {str(e)}') from e

        try:
            response_data = response.json() if response.text else {}
        except ValueError:
            response_data = {'message': response.text}

        if response.status_code >= 400:
            error_message = response_data.get('message', 'Unknown error') if isinstance(response_data, dict) else 'Unknown error'
            raise IntegrationError(
                f'Resend returned status {response.status_code}: {error_message}',
                status_code=response.status_code
            )
        return response_data

    async def call(self, method: str, path: str, payload: Dict[str, Any] = None) -> Any:
        return await run_blocking(self.request, method, path, payload)


def _recipients(value):
    if value is None:
        return None
    return [value] if isinstance(value, str) else list(value)


# ============================================================
# EMAILS
# ============================================================

async def send_email(args: dict, ctx: ResendContext):
    payload = compact({
        'from': args.get('from') or ctx.from_address,
        'to': _recipients(args['to']),
        'subject': args['subject'],
        'html': args.get('html'),
        'text': args.get('text'),
        'cc': _recipients(args.get('cc')),
        'bcc': _recipients(args.get('bcc')),
        'reply_to': args.get('reply_to'),
        'scheduled_at': args.get('scheduled_at'),
    })
    if 'html' not in payload and 'text' not in payload:
        raise IntegrationError('Either html or text content is required')
    return await ctx.call('POST', '/emails', payload)


async def get_email(args: dict, ctx: ResendContext):
    return await ctx.call('GET', f"/emails/{args['email_id']}")


async def cancel_email(args: dict, ctx: ResendContext):
    return await ctx.call('POST', f"/emails/{args['email_id']}/cancel")


# ============================================================
# DOMAINS
# ============================================================

async def list_domains(args: dict, ctx: ResendContext):
    return await ctx.call('GET', '/domains')


async def get_domain(args: dict, ctx: ResendContext):
    return await ctx.call('GET', f"/domains/{args['domain_id']}")


async def create_domain(args: dict, ctx: ResendContext):
    return await ctx.call('POST', '/domains', compact({
        'name': args['name'],
        'region': args.get('region'),
    }))


# ============================================================
# AUDIENCES & CONTACTS
# ============================================================

async def list_audiences(args: dict, ctx: ResendContext):
    return await ctx.call('GET', '/audiences')


async def create_audience(args: dict, ctx: ResendContext):
    return await ctx.call('POST', '/audiences', {'name': args['name']})


async def list_contacts(args: dict, ctx: ResendContext):
    return await ctx.call('GET', f"/audiences/{args['audience_id']}/contacts")


async def create_contact(args: dict, ctx: ResendContext):
    return await ctx.call('POST', f"/audiences/{args['audience_id']}/contacts", compact({
        'email': args['email'],
        'first_name': args.get('first_name'),
        'last_name': args.get('last_name'),
        'unsubscribed': args.get('unsubscribed'),
    }))


RESEND_OPERATIONS = [
    define_operation(
        "resend_send_email",
        "Send an email",
        [
            ToolParameter("from", "string", "Sender address (defaults to RESEND_FROM)"),
            ToolParameter("to", ["string", "array"], "Recipient address or addresses", required=True, items=ADDRESS_ITEM),
            ToolParameter("subject", "string", "Email subject", required=True),
            ToolParameter("html", "string", "HTML content"),
            ToolParameter("text", "string", "Plain text content"),
            ToolParameter("cc", ["string", "array"], "CC recipients", items=ADDRESS_ITEM),
            ToolParameter("bcc", ["string", "array"], "BCC recipients", items=ADDRESS_ITEM),
            ToolParameter("reply_to", "string", "Reply-to address"),
            ToolParameter("scheduled_at", "string", "Send later, ISO 8601 timestamp"),
        ],
        subcategory="emails",
    ),
    define_operation(
        "resend_get_email",
        "Get an email by ID",
        [ToolParameter("email_id", "string", "Email ID", required=True)],
        subcategory="emails",
    ),
    define_operation(
        "resend_cancel_email",
        "Cancel a scheduled email",
        [ToolParameter("email_id", "string", "Email ID", required=True)],
        subcategory="emails",
    ),
    define_operation("resend_list_domains", "List sending domains", subcategory="domains"),
    define_operation(
        "resend_get_domain",
        "Get a domain and its DNS records",
        [ToolParameter("domain_id", "string", "Domain ID", required=True)],
        subcategory="domains",
    ),
    define_operation(
        "resend_create_domain",
        "Register a new sending domain",
        [
            ToolParameter("name", "string", "Domain name, e.g. mail.example.com", required=True),
            ToolParameter("region", "string", "Sending region",
                          enum=["us-east-1", "eu-west-1", "sa-east-1", "ap-northeast-1"]),
        ],
        subcategory="domains",
    ),
    define_operation("resend_list_audiences", "List audiences", subcategory="audiences"),
    define_operation(
        "resend_create_audience",
        "Create an audience",
        [ToolParameter("name", "string", "Audience name", required=True)],
        subcategory="audiences",
    ),
    define_operation(
        "resend_list_contacts",
        "List the contacts of an audience",
        [ToolParameter("audience_id", "string", "Audience ID", required=True)],
        subcategory="contacts",
    ),
    define_operation(
        "resend_create_contact",
        "Add a contact to an audience",
        [
            ToolParameter("audience_id", "string", "Audience ID", required=True),
            ToolParameter("email", "string", "Contact email address", required=True),
            ToolParameter("first_name", "string", "First name"),
            ToolParameter("last_name", "string", "Last name"),
            ToolParameter("unsubscribed", "boolean", "Whether the contact is unsubscribed"),
        ],
        subcategory="contacts",
    ),
]

RESEND_HANDLERS = {
    "resend_send_email": send_email,
    "resend_get_email": get_email,
    "resend_cancel_email": cancel_email,
    "resend_list_domains": list_domains,
    "resend_get_domain": get_domain,
    "resend_create_domain": create_domain,
    "resend_list_audiences": list_audiences,
    "resend_create_audience": create_audience,
    "resend_list_contacts": list_contacts,
    "resend_create_contact": create_contact,
}


def create_module(context: ResendContext = None):
    """Resend integration module; credentials come from config unless a context is given."""
    if context is None:
        context = ResendContext(
            api_key=config.RESEND_API_KEY,
            from_address=config.RESEND_FROM,
            base_url=config.RESEND_API_URL,
        )
    return build_module(
        CATEGORY,
        RESEND_OPERATIONS,
        RESEND_HANDLERS,
        context=context,
        display_name="Resend",
        description="Resend email delivery and management tools",
        secrets=(context.api_key,),
    )
