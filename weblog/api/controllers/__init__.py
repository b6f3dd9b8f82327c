from weblog.api.controllers.devices import router as devices_router

controller_routers = [devices_router]
