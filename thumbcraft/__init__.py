# thumbcraft package
#
# Tool-using Gemini orchestration for video thumbnail generation. Callers
# can import the public surface from a single location:
#
#   from thumbcraft import (
#       Orchestrator, OrchestratorConfig, GeminiProvider, McpToolClient,
#       handle_chat_request,
#   )
#
# Lazy loading: imports are deferred via __getattr__ so that importing the
# package does not pull in the google-genai or mcp SDKs.

__version__ = "0.1.0"

# Mapping from public name -> (module_path, attribute_name)
_LAZY_IMPORTS = {
    # Orchestration
    "Orchestrator": (".orchestrator", "Orchestrator"),
    "MAX_TOOL_ROUNDS": (".orchestrator", "MAX_TOOL_ROUNDS"),
    "PendingSelection": (".selection", "PendingSelection"),
    "ConversationSession": (".session", "ConversationSession"),
    "SessionConfig": (".session", "SessionConfig"),
    # Configuration
    "OrchestratorConfig": (".config", "OrchestratorConfig"),
    # Remote services
    "GeminiProvider": (".provider", "GeminiProvider"),
    "McpToolClient": (".mcp_client", "McpToolClient"),
    "ToolClient": (".mcp_client", "ToolClient"),
    # Request handling
    "handle_chat_request": (".chat_handler", "handle_chat_request"),
    "ChatReply": (".chat_handler", "ChatReply"),
    # Parsing
    "parse": (".response_parser", "parse"),
    "has_tool_calls": (".response_parser", "has_tool_calls"),
    "extract_tool_calls": (".response_parser", "extract_tool_calls"),
    # Types
    "Message": (".types", "Message"),
    "Part": (".types", "Part"),
    "Role": (".types", "Role"),
    "FunctionCall": (".types", "FunctionCall"),
    "ToolOutcome": (".types", "ToolOutcome"),
    "ToolSchema": (".types", "ToolSchema"),
    "InlineImage": (".types", "InlineImage"),
    "ParsedResult": (".types", "ParsedResult"),
    "ProviderResponse": (".types", "ProviderResponse"),
    # Errors
    "ThumbcraftError": (".errors", "ThumbcraftError"),
    "ValidationError": (".errors", "ValidationError"),
    "ConfigurationError": (".errors", "ConfigurationError"),
    "ToolError": (".errors", "ToolError"),
    "ToolServerUnavailable": (".errors", "ToolServerUnavailable"),
    "ModelError": (".errors", "ModelError"),
    "UnrecognizedPartError": (".errors", "UnrecognizedPartError"),
}

__all__ = list(_LAZY_IMPORTS.keys())


def __getattr__(name):
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        import importlib
        module = importlib.import_module(module_path, __name__)
        value = getattr(module, attr_name)
        globals()[name] = value
        return value
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    return list(globals().keys()) + list(_LAZY_IMPORTS.keys())
