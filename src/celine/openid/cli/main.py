# openid/cli/main.py
from __future__ import annotations
import typer

from celine.openid.cli.realm import realm_app
from celine.openid.cli.state import state_app
from celine.openid.cli.user import user_app

app = typer.Typer(help="OpenID login service utilities", no_args_is_help=True)

app.add_typer(realm_app, name="realm")
app.add_typer(state_app, name="state")
app.add_typer(user_app, name="user")


def run():
    app()


if __name__ == "__main__":
    run()
