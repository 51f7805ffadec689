from fastapi import APIRouter, Depends
from pydantic import ValidationError as SchemaError

from finpin.core.auth import SignedRequest, get_signed_request
from finpin.core.deps import get_parser
from finpin.core.errors import ValidationError
from finpin.schemas.expense import ExpenseParseIn, ExpenseParseOut
from finpin.services.parser import ExpenseParser

router = APIRouter()


@router.post("/expense", response_model=ExpenseParseOut)
async def parse_expense(
    signed: SignedRequest = Depends(get_signed_request),
    parser: ExpenseParser = Depends(get_parser),
):
    try:
        payload = ExpenseParseIn.model_validate_json(signed.body)
    except SchemaError as exc:
        raise ValidationError("Invalid request data") from exc
    result = await parser.parse(payload.text, payload.context)
    return ExpenseParseOut(data=result)
