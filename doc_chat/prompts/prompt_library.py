from langchain_core.prompts import PromptTemplate

# Fixed template text, keep verbatim.
RAG_TEMPLATE = """You are an AI assistant that answers questions based on the provided context from uploaded documents.

Context from the document:
{context}

Chat History:
{chat_history}

Question: {question}

Instructions:
- Answer the question using the provided context from the document
- If the context doesn't contain relevant information, say so clearly
- Be concise but comprehensive in your response
- Reference specific parts of the document when applicable
- Maintain conversation context from the chat history

Answer:"""


# Prompt for answering a question from document context + chat history
rag_prompt = PromptTemplate.from_template(RAG_TEMPLATE)


# Central dictionary to register prompts
PROMPT_REGISTRY = {
    "rag": rag_prompt,
}
