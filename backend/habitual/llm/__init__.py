"""
Conversational agent orchestration.

- prompts: ContextBuilder assembles cache-ordered system blocks and picks tool schemas
- toolsets / registry: action, note, filesystem and draft-review tools behind a closed ToolName enum
- dispatch: one completion, at most one tool round, one follow-up
- signals: GENERATE_ACTIONS / GENERATE_ASSET / STORE_MEASUREMENT / READY_TO_CREATE parsing
- tracker: per-turn events and totals, written once as an agent log

The orchestrator ties these together for one user turn on top of the OpenAI
function-calling API.
"""
