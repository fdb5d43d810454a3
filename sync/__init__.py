"""
sync — Outlook calendar → local meetings pipeline.

  • TokenRefresher (connectors.token_manager) keeps access tokens fresh
  • CalendarFetcher pulls upcoming events from Microsoft Graph
  • EventReconciler imports new events exactly once
  • SyncTrigger composes the two and throttles automatic runs
  • AutoSyncScheduler drives automatic runs in the background
"""
