"""
Order assistant endpoints

- Prompt parsing with Claude (optional hint for the classifier)
- Command execution over the orders of the resolved date range
- Chat transcript
"""
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional

from app.models.query import DateRange
from app.services.assistant_service import AssistantService
from app.services.order_service import order_service
from app.services.prompt_parser_service import PromptParseError, PromptParserService
from app.utils.logger import log

router = APIRouter(prefix="/api", tags=["assistant"])

prompt_parser = PromptParserService()
assistant_service = AssistantService(order_service, prompt_parser=prompt_parser)


class ParsePromptRequest(BaseModel):
    prompt: Any = None


class AssistantQuery(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    command: str
    start_date: Optional[str] = Field(None, alias="startDate")
    end_date: Optional[str] = Field(None, alias="endDate")
    hint: Optional[Dict] = None
    use_prompt_parser: bool = Field(True, alias="usePromptParser")


@router.post("/parse-prompt")
async def parse_prompt(request: ParsePromptRequest):
    """
    Parse a question into {intent, customer, brand, startDate, endDate, ...}.

    Failures carry fallback=true: the caller should use its own heuristics.
    """
    if not request.prompt or not isinstance(request.prompt, str):
        return JSONResponse(status_code=400, content={"error": "Prompt is required and must be a string"})

    if not prompt_parser.is_available():
        log.error("ANTHROPIC_API_KEY not configured")
        return JSONResponse(status_code=500, content={
            "error": "Anthropic API key not configured",
            "fallback": True,
        })

    try:
        result = prompt_parser.parse(request.prompt)
    except PromptParseError as e:
        return JSONResponse(status_code=500, content={
            "error": "Failed to parse prompt",
            "message": str(e),
            "fallback": True,
        })

    return {"success": True, "parsed": result["parsed"], "usage": result["usage"]}


@router.post("/assistant/query")
async def assistant_query(request: AssistantQuery):
    """Answer a command; the orders it needs are loaded first."""
    current_range = None
    if request.start_date and request.end_date:
        current_range = DateRange(start_date=request.start_date, end_date=request.end_date)

    try:
        result = await assistant_service.ask(
            request.command,
            hint=request.hint,
            current_range=current_range,
            use_prompt_parser=request.use_prompt_parser,
        )
    except Exception as e:
        log.error(f"Error answering assistant command: {str(e)}")
        return JSONResponse(status_code=500, content={
            "success": False,
            "error": "Failed to answer command",
            "message": str(e),
        })

    return {
        "success": True,
        "content": result.content,
        "data": result.data,
        "intent": result.intent,
    }


@router.get("/assistant/messages")
async def get_messages():
    return {"messages": assistant_service.session.to_list()}


@router.delete("/assistant/messages")
async def clear_messages():
    assistant_service.session.clear()
    return {"success": True, "messages": assistant_service.session.to_list()}
