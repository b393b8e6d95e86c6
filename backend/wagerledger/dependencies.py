"""FastAPI dependencies for reaching the per-process ledger services."""

from fastapi import Request

from wagerledger.services.ledger import Ledger


def get_ledger(request: Request) -> Ledger:
    return request.app.state.ledger
