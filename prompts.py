"""
Builds the text sent to the model: the system prompt, the continuation
instruction and the project-update prompt that carries an existing project.
"""
import logging

from config import SYSTEM_PROMPT_PATH
from data_models import FileNode
from file_tree import render_tree_listing

FALLBACK_SYSTEM_PROMPT = (
    "You are an expert software developer. Stream the project as JSON objects, one per line, "
    'using the actions THINKING, CREATE_FILE, APPEND_TO_FILE, FINISH and ERROR. Finish with '
    '{"action":"FINISH","isComplete":true,"suggestions":[...]}.'
)

CONTINUATION_PROMPT = (
    "Continue generating the project. Please resume from where you left off and do not repeat "
    "any files or code that were already sent. If all files are complete, send the FINISH action."
)


def load_system_prompt() -> str:
    """Loads the system prompt text from 'public_data/system_prompt.txt'."""
    try:
        with open(SYSTEM_PROMPT_PATH, "r", encoding="utf-8") as f:
            return f.read()
    except FileNotFoundError:
        logging.warning(f"System prompt not found at '{SYSTEM_PROMPT_PATH}', using the built-in directive.")
        return FALLBACK_SYSTEM_PROMPT


def build_update_prompt(
    original_prompt: str,
    instruction: str,
    file_tree: list[FileNode],
    file_contents: dict[str, str],
) -> str:
    """
    Embeds the whole current project in a prompt, so the model can apply a new
    instruction to it without any server-side memory of the earlier run.
    """
    file_blocks = "\n\n".join(
        f"--- START OF FILE: {path} ---\n{content}\n--- END OF FILE: {path} ---"
        for path, content in sorted(file_contents.items())
    )
    return (
        f"The original request for this project was:\n{original_prompt or '(not recorded)'}\n\n"
        f"Apply the following change to the existing project:\n{instruction}\n\n"
        f"Current file structure:\n{render_tree_listing(file_tree)}\n\n"
        f"Full content of every existing file:\n\n{file_blocks}\n\n"
        "Only send CREATE_FILE and APPEND_TO_FILE actions for files you add or change. "
        "Files you do not mention are kept as they are."
    )
