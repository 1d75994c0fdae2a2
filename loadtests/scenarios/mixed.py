"""Mixed warehouse workload scenario.

Combines the reservation journeys and quote traffic with weights that
model a storefront during a sale. This is the recommended scenario for
load baseline testing.
"""

from locust import HttpUser, between

from loadtests.scenarios.reservations import ReservationCommitJourney, ReservationReleaseJourney


class MixedWorkloadUser(HttpUser):
    """Order-driven stock movements alongside steady quoting.

    Weight distribution:
    - Reservation that ships: most orders
    - Reservation that is cancelled: roughly one in three
    """

    wait_time = between(0.5, 3.0)
    tasks = {
        ReservationCommitJourney: 6,
        ReservationReleaseJourney: 3,
    }
