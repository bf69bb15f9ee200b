"""
Custom Integration Example
==========================

Shows how to add your own REST API to Tool Relay.

Integrations are defined as JSON files. Each tool maps model input fields
onto a URL template and an optional JSON body.
"""

import json
from pathlib import Path

from toolrelay import ConnectionResolver, ToolExecutor, Toolbox, load_integrations
from toolrelay.secrets import ParameterStore


def create_custom_integration():
    """
    Create an integration definition for a ticketing API.

    The base URL, user and token are read per tenant from SSM Parameter Store,
    under /<tenant>/helpdeskdomain, /<tenant>/helpdeskuser and
    /<tenant>/helpdesktoken.
    """

    helpdesk = {
        "integration": "helpdesk",
        "name": "Helpdesk",
        "description": "Support tickets",
        "auth": {
            "type": "basic",
            "parameters": {
                "base_url": "helpdeskdomain",
                "username": "helpdeskuser",
                "password": "helpdesktoken",
            },
        },
        "tools": [
            {
                "name": "getTicket",
                "method": "GET",
                "url": "/api/v2/tickets/{{ticket}}",
                "description": "Fetch a support ticket by its number",
                "input_schema": {
                    "ticket": {
                        "type": "string",
                        "required": True,
                        "description": "Ticket number, e.g. 4711",
                    }
                },
            },
            {
                "name": "addTicketNote",
                "method": "POST",
                "url": "/api/v2/tickets/{{ticket}}/notes",
                "body_fields": ["note"],
                "description": "Add an internal note to a ticket",
                "input_schema": {
                    "ticket": {"type": "string", "required": True},
                    "note": {
                        "type": "string",
                        "required": True,
                        "description": "Text of the note",
                    },
                },
            },
        ],
    }

    custom_dir = Path("./custom_integrations")
    custom_dir.mkdir(exist_ok=True)

    with open(custom_dir / "helpdesk.json", "w") as f:
        json.dump(helpdesk, f, indent=2)

    print(f"Created custom integration: {custom_dir / 'helpdesk.json'}")
    return custom_dir


def inspect_custom_integration(integrations_dir: str):
    """Load the integration and show what the model will be offered."""
    integrations = load_integrations(integrations_dir)
    toolbox = Toolbox(integrations, ConnectionResolver(ParameterStore()), ToolExecutor())

    for descriptor in toolbox.descriptors():
        print(f"  {descriptor.method} {descriptor.url_template}  ({descriptor.name})")
        print(f"    {json.dumps(descriptor.parameters_schema())}")


if __name__ == "__main__":
    print("=" * 60)
    print("Custom Integration Example")
    print("=" * 60)
    print()

    custom_dir = create_custom_integration()
    inspect_custom_integration(str(custom_dir))

    print()
    print("To serve this integration:")
    print(f"  INTEGRATIONS_DIR={custom_dir} toolrelay")
