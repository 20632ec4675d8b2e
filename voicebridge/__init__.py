"""
Voicebridge - jambonz call control to LLM chat completion bridge

This application runs voice agents: each agent answers phone calls delivered by a
jambonz telephony platform over its websocket API, turns caller speech into chat
completion requests, and speaks the model's replies back. Model function calls are
handed to external listeners over the agent's progress stream and their results
fed back to the model before it answers.

Architecture Overview:
- FastAPI server exposing the telephony and progress websockets of every agent,
  plus an admin API to create, update and delete agents
- Per-call state machine driving the conversation turn by turn
- Pluggable LLM adapters with inline directives (@HANGUP, @DATA) in model output

Key Components:
- bot: Call sessions, agents and the agent registry
- config: Application-wide configuration, constants, and logging setup
- handlers: Admin API and progress message handlers
- llm: LLM adapters and the directive parser
- models: Data structures for completions, telephony events and API bodies
- services: Telephony source, progress channel and progress client
- websocket_manager: Accepts agent websockets and routes their frames

Getting Started:
1. Set up environment variables:
   - OPENAI_API_KEY: Your OpenAI API key
   - PORT: Port to run the server on (default 8000)
   - HOST: Host to bind the server to (default 0.0.0.0)
   - LOG_LEVEL: Logging level (default INFO)

2. Start the server:
   ```bash
   python run.py
   ```

3. Create an agent with POST /api/agents and point a jambonz application at
   ws://your-server:8000/agent/<id>
"""
