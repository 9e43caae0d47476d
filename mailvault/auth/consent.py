"""Interactive consent step of the authorization-code grant.

The user opens the provider's consent page in a browser, signs in, and is
redirected to the loopback URI. Nothing listens there, so the browser shows
an error page; the user pastes that URL (or only the code) back into the
terminal.
"""

from urllib.parse import parse_qs, urlsplit

import typer

from mailvault.errors import AuthError


def extract_code(response: str) -> str:
    """Pull the authorization code out of a pasted redirect URL.

    Accepts the full redirect URL, a bare query string, or the code itself.

    Raises:
        AuthError: If the redirect carries an OAuth error or no code.
    """
    response = response.strip()

    # A bare code has no query syntax
    if "=" not in response:
        return response

    query = urlsplit(response).query or response
    params = parse_qs(query)

    if "error" in params:
        description = params.get("error_description", params["error"])[0]
        raise AuthError(f"Authorization was denied: {description}")

    codes = params.get("code")
    if not codes:
        raise AuthError("No authorization code found in the redirect URL.")

    return codes[0]


def prompt_for_code(authorization_url: str) -> str:
    """Ask the user to authorize in a browser and paste the result.

    Tries to open the browser automatically; the URL is printed either way.
    """
    typer.echo("Open the following URL in your browser and sign in:")
    typer.echo()
    typer.echo(f"  {authorization_url}")
    typer.echo()
    typer.launch(authorization_url)

    response = typer.prompt("Paste the URL you were redirected to (or the code)")
    return extract_code(response)
