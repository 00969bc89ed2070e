"""
src/agent/api_models.py

Purpose: Pydantic models for the control API wire format
Context: All JSON responses share the {success, message?, data?} envelope;
         optional fields that are unset are omitted from the wire.
"""

from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict

from rule_syntax import extract_option, generate_rule_id, rule_action

T = TypeVar('T')


class RuleRequest(BaseModel):
    """
    Body of POST /rule

    rule_type and filename are accepted for client compatibility; the agent
    manages a single custom rules file and ignores them.
    """
    rule_content: str
    rule_type: Optional[str] = None
    filename: Optional[str] = None


class Rule(BaseModel):
    """In-memory projection of one line of the rules file"""
    id: str
    content: str
    sid: Optional[str] = None
    msg: Optional[str] = None
    action: Optional[str] = None

    @classmethod
    def from_line(cls, line: str) -> "Rule":
        """Keep the raw line (minus its line ending) as content; the ID uses the trimmed text"""
        content = line.rstrip("\r\n")
        trimmed = content.strip()
        return cls(
            id=generate_rule_id(trimmed),
            content=content,
            sid=extract_option(trimmed, 'sid'),
            msg=extract_option(trimmed, 'msg'),
            action=rule_action(trimmed),
        )


class RulesList(BaseModel):
    rules: List[Rule]
    count: int


class ApiResponse(BaseModel, Generic[T]):
    success: bool
    message: Optional[str] = None
    data: Optional[T] = None

    def to_wire(self) -> dict:
        return self.model_dump(exclude_none=True)


class EveEvent(BaseModel):
    """
    Suricata EVE JSON record

    Only a handful of common fields are typed; everything else is carried
    through untouched.
    """
    model_config = ConfigDict(extra='allow')

    timestamp: Optional[str] = None
    event_type: Optional[str] = None
    src_ip: Optional[str] = None
    dest_ip: Optional[str] = None
    tags: List[str] = []

    def to_payload(self) -> dict:
        payload = self.model_dump(exclude_unset=True)
        payload.update(self.model_extra or {})
        return payload


def envelope(success: bool, message: Optional[str] = None, data: Any = None) -> dict:
    """Build a response envelope dict with absent fields dropped"""
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_none=True)
    return ApiResponse[Any](success=success, message=message, data=data).to_wire()
