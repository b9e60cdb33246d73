from middleware.request_lifecycle import RequestLifecycleMiddleware
