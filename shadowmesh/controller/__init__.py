"""Shadow service naming and port helpers, and the controller work queue."""