"""Prompt templates for RAG system"""

from typing import List, Dict


ASSISTANT_INSTRUCTIONS = """You are an AI assistant helping a user understand and work with the documents in their Google Drive folders. Answer questions based on the uploaded documents. Be helpful, accurate, and cite the specific documents you take information from. If the documents do not contain the answer, say so instead of guessing."""


FALLBACK_PROMPT = """You are an AI assistant helping users understand and work with documents in their Google Drive folder "{folder_name}".

Based on the following context from the user's documents, please answer their question. If the context doesn't contain relevant information, let them know and suggest they might need to ask about different topics or check if their documents have been properly indexed.

Context from documents:
{context}

User question: {question}

Please provide a helpful response based on the context above. If you reference specific information, mention which document it came from."""


NO_CONTEXT_MESSAGE = "No relevant documents found in this folder."

FAILURE_MESSAGE = (
    "I'm sorry, there was an error processing your request. Please make sure your "
    "documents are indexed and try again. If the issue persists, the document "
    "assistant service may need to be configured."
)

EMPTY_ASSISTANT_REPLY = "I'm sorry, I couldn't generate a response based on your documents."

EMPTY_COMPLETION_REPLY = "I'm sorry, I couldn't generate a response."


def build_fallback_prompt(folder_name: str, context: str, question: str) -> str:
    """Build the folder-scoped system prompt for the vector-search path"""
    return FALLBACK_PROMPT.format(
        folder_name=folder_name,
        context=context,
        question=question
    )


def build_assistant_messages(history: List[Dict[str, str]], message: str) -> List[Dict[str, str]]:
    """
    Build the ordered message list sent to the managed assistant

    Args:
        history: Prior turns, oldest first, each with 'role' and 'content'
        message: The new user message

    Returns:
        History followed by the new user turn
    """
    messages = [
        {"role": turn["role"], "content": turn["content"]}
        for turn in history
        if turn.get("role") in ("user", "assistant") and turn.get("content")
    ]
    messages.append({"role": "user", "content": message})
    return messages
