"""Fixed replies sent back through the gateway."""

RESET_REPLY = "Chat history has been reset."

PRIVACY_REPLY = "Chat privacy set to {mode}."

PERSONA_SELECTED_REPLY = "Personality has been set to {name}."

MODEL_SELECTED_REPLY = "Model has been set to {name}."

PERSONA_PROMPT_REQUEST = (
    "Persona {name!r} is ready. Run the command again with the prompt "
    "this persona should use."
)

PERSONA_DEFINED_REPLY = "Persona {name!r} has been updated."

PERSONA_CANCELLED_REPLY = "Persona definition for {name!r} was cancelled."

NOTHING_TO_CANCEL_REPLY = "There is no persona definition in progress."

PERSONA_ADDED_REPLY = "Persona {name!r} has been saved."

PERSONA_REMOVED_REPLY = "Persona {name!r} has been removed."

NO_RESPONSE_REPLY = "No response was generated."

USAGE_REPLY = (
    "Chats: {chat_count}\n"
    "Lifetime tokens: {total_tokens}\n"
    "Tokens retained in this conversation: {tokens_used}/{token_limit}\n"
    "Persona: {persona}\n"
    "Model: {model}"
)

UNKNOWN_COMMAND_REPLY = "Unknown command: {name}."
