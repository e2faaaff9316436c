"""
Realtime Receptionist - Twilio Media Streams to OpenAI Realtime API relay

This application answers phone calls with an AI receptionist. Call audio
arrives from Twilio Media Streams as 8 kHz mu-law, is converted to 24 kHz PCM16
for the OpenAI Realtime API, and the model's speech is converted back and
played to the caller.

Architecture Overview:
- FastAPI server exposing the TwiML webhooks and the media stream WebSocket
- One call session per media stream, driven by a single event worker
- A Realtime connection manager, shared by all calls or opened per call
- A text backchannel from the model that drives transfers, hangups and
  lead capture

Key Components:
- audio: mu-law codec, resampling and the keepalive silence generator
- bot: Realtime connection manager, call session, control channel, coordinator
- config: Application-wide constants, settings and logging setup
- handlers: Handlers for the media stream WebSocket events
- models: Wire protocol schemas, lead record and call registry
- services: Twilio call redirects and lead notifications
- websocket_manager: Media stream WebSocket lifecycle and event routing

Getting Started:
1. Set up environment variables (or a .env file):
   - OPENAI_API_KEY: Your OpenAI API key
   - PUBLIC_BASE_URL: Public https URL of this server
   - TWILIO_ACCOUNT_SID / TWILIO_AUTH_TOKEN: Needed for transfers and SMS alerts

2. Start the server:
   ```bash
   python run.py
   ```

3. Point the Twilio number's voice webhook at POST {PUBLIC_BASE_URL}/voice
"""
