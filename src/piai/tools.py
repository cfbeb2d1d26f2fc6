import inspect
from typing import Any, Callable

from pydantic import BaseModel, Field


_JSON_TYPES = {
    'str': 'string',
    'int': 'integer',
    'float': 'number',
    'bool': 'boolean',
    'NoneType': 'null',
    'dict': 'object',
    'list': 'array',
    'tuple': 'array',  # closest equivalent
    'set': 'array',    # closest equivalent
}


def normalize_to_json_type(python_type_str: str) -> str:
    return _JSON_TYPES.get(python_type_str, 'string')


class Tool(BaseModel):
    """A function the assistant may call.

    ``parameters`` is a JSON schema object describing the arguments.
    Build one directly, or derive it from a typed callable with
    :meth:`Tool.from_function` / the :func:`tool` decorator.
    """

    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    strict: bool = False

    @classmethod
    def from_function(cls, func: Callable, strict: bool = False) -> "Tool":
        signature = inspect.signature(func)
        properties = {}
        required = []
        for param_name, param in signature.parameters.items():
            annotation = param.annotation
            type_name = getattr(annotation, "__name__", str(annotation))
            properties[param_name] = {
                "type": normalize_to_json_type(type_name),
            }
            if param.default is inspect.Parameter.empty:
                required.append(param_name)

        return cls(
            name=func.__name__,
            description=inspect.getdoc(func) or "",
            parameters={
                "type": "object",
                "properties": properties,
                "required": required,
            },
            strict=strict,
        )

    def openai_schema(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
                "strict": self.strict,
            },
        }


def tool(func: Callable) -> Tool:
    """Decorator form of :meth:`Tool.from_function`."""
    return Tool.from_function(func)
