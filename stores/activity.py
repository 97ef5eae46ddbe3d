def log_activity(cur, admin_user_id, action, details=None):
    ''' Append an audit row on the caller's cursor, skipped without an admin id '''
    if admin_user_id is None:
        return
    cur.execute(
        "INSERT INTO activity_log (admin_user_id, action, details) VALUES (%s, %s, %s)",
        (admin_user_id, action, details)
    )
