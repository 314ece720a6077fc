# Utils package for the SOF laytime service
