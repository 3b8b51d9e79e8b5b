from site_cms.llm.interpreter import CommandInterpreter, parse_action_json
from site_cms.llm.transcribe import transcribe_voice

__all__ = [
    "CommandInterpreter",
    "parse_action_json",
    "transcribe_voice",
]
