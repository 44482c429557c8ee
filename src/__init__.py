"""Agentic Services — LLM specialist agents that act on a user's data.

Architecture Overview
=====================

Four specialists, each a **LangGraph** state machine with two nodes:

1. **agent** — invokes Claude with the specialist's system prompt and the
   conversation history.  The LLM is bound only to that specialist's tools.

2. **tools** — executes the requested tool calls in order through a
   ``ToolRegistry`` scoped to the same tools.  Results go back to the agent
   node as JSON result envelopes.

Routing: agent → (tool calls?) → tools → agent (loop until no tool calls → END)

Specialists
-----------
- **sales** — product catalogue, cart and checkout (invoices)
- **support** — knowledge-base search and support tickets
- **navigator** — finds pages of the website and explains how to use them
- **assistant** — personal tasks and outbound email

A request without a known ``agentType`` goes to the **orchestrator**, a
cheap model bound only to ``transfer_to_<specialist>`` handoff tools.

Key Design Decisions
--------------------
- **Identity**: bearer tokens are checked against Supabase Auth.  Anything
  short of a valid token is an anonymous turn: the agent answers, but
  user-scoped tools refuse and nothing is persisted.
- **Persistence**: SQLAlchemy over PostgreSQL (SQLite locally).  Multi-step
  writes such as checkout run in a single transaction.
- **Memory**: the client sends the whole history each turn; graphs keep no
  checkpointer.  Signed-in transcripts are stored per session.
- **Bounded turns**: a step limit on the tool loop and a wall-clock timeout
  on the HTTP turn.
- **Dual Interface**: FastAPI server (production) + CLI chat loop (development/testing).

Package Structure
-----------------
- ``src/agent.py`` — LangGraph graphs (specialists + orchestrator)
- ``src/runner.py`` — one chat turn end to end
- ``src/context.py`` — caller identity and session resolution
- ``src/specialists.py`` — specialist definitions
- ``src/config.py`` — Centralized configuration from environment variables
- ``src/prompts.py`` — System prompts
- ``src/server.py`` — FastAPI application
- ``src/main.py`` — CLI chat interface
- ``src/db/`` — ORM models, the ``Store`` and demo seed data
- ``src/services/`` — identity provider, SMTP mailer, metrics
- ``src/tools/`` — LangChain tools per specialist and the tool registry
- ``src/api/`` — FastAPI routes and Pydantic schemas
"""
