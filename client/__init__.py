from client.widget_session import ChatWidgetSession, SessionStore
