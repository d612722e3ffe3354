"""HTTP routes: public submissions, client verification, admin tools."""
