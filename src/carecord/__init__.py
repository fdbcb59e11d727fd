"""
Carecord - conversational-safety core for a Discord companion bot

Carecord decides, for every inbound chat message, whether it signals elevated
risk of self-harm or crisis and which support response to trigger, and whether
the message (or the author's recent message pattern) breaks community-safety
rules and which moderation action applies.

Core Components:

- **Pattern Matcher**: Cheap keyword / contextual-regex scan with generic-help
  suppression, gating the costly classifier call
- **Classification Adapter**: Wraps the external moderation classifier and
  never lets its failures escape
- **Severity Resolver**: Data-driven threshold ladders for crisis severity,
  support level and moderation action
- **Behavior Tracker**: Bounded per-user sliding window for spam detection
- **Policy Gate / Decision Engine / Escalation Dispatcher**: Opt-outs and guild
  policy, corroborated escalation, ordered fail-isolated side effects

Usage:
    from carecord.main import main
    main()  # Starts the bot with the safety pipeline attached
"""
