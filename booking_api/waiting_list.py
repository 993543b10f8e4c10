class WaitingListService:
    """
    Boundary for waiting lists on fully booked time slots.

    Registered on the app as ``app.waiting_list``. It has no operations yet.
    """

    # TODO: queue customers per slot and notify the next in line when a booking is cancelled
    def __init__(self):
        pass
