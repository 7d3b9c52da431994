"""Google Sheets access: REST client, credentials, id/range resolution, table loading."""
