"""
Services module for calls to external APIs.

Key components:
- call_control: Twilio REST call redirects and the TwiML documents served to
  live calls.
- lead_notifier: SMS alert and form submission for captured leads.
"""
